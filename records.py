# ======================================
# Medical Records and Billing
# ======================================

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

import repositories as repo
from errors import Conflict, NotFound, ValidationError
from models import Bill, MedicalRecord

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
MAX_AMOUNT = Decimal('1e8')


def _require_patient(session, patient_id):
    patient = repo.get_patient(session, patient_id)
    if patient is None:
        raise NotFound('Patient not found')
    return patient


def create_medical_record(provider, patient_id, diagnosis, treatment, record_date=None):
    def create(session):
        patient = _require_patient(session, patient_id)
        record = repo.add(session, MedicalRecord(
            patient_id=patient_id,
            diagnosis=diagnosis.strip(),
            treatment=treatment.strip(),
            record_date=record_date or date.today(),
        ))
        return record, patient

    record, patient = provider.run(create)
    logger.info('Medical record %s added for patient %s', record.record_id, patient_id)
    return record, patient


def _positive_amount(amount):
    """Amount rounded to cents; must still be positive and fit NUMERIC(10, 2)."""
    try:
        value = Decimal(str(amount)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError('Amount must be a positive number') from None
    if not value.is_finite() or value <= 0:
        raise ValidationError('Amount must be a positive number')
    if value >= MAX_AMOUNT:
        raise ValidationError(f'Amount must be less than {MAX_AMOUNT:,.0f}')
    return value


def create_bill(provider, patient_id, amount, bill_date=None, paid=False):
    value = _positive_amount(amount)

    def create(session):
        patient = _require_patient(session, patient_id)
        bill = repo.add(session, Bill(
            patient_id=patient_id,
            amount=value,
            bill_date=bill_date or date.today(),
            paid=bool(paid),
        ))
        return bill, patient

    bill, patient = provider.run(create)
    logger.info('Bill %s of %s issued to patient %s', bill.bill_id, value, patient_id)
    return bill, patient


def pay_bill(provider, bill_id):
    def pay(session):
        bill = repo.get_bill(session, bill_id, lock=True)
        if bill is None:
            raise NotFound('Bill not found')
        if bill.paid:
            raise Conflict('Bill is already paid')
        bill.paid = True
        session.flush()
        return bill

    bill = provider.run(pay)
    logger.info('Bill %s paid', bill_id)
    return bill
