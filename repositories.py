# ======================================
# Entity Repositories
# ======================================
#
# Plain functions over a Session supplied by the TransactionProvider.
# Nothing here commits; the surrounding unit of work decides.

from datetime import timedelta

from sqlalchemy import case, func, select

from models import (
    ACTIVE_STATUSES,
    Admission,
    Appointment,
    AppointmentStatus,
    Bill,
    Doctor,
    MedicalRecord,
    Patient,
    Ward,
)

CONFLICT_WINDOW = timedelta(hours=1)


def _get(session, model, pk, lock):
    return session.get(model, pk, with_for_update=lock or None)


def get_patient(session, patient_id, lock=False):
    return _get(session, Patient, patient_id, lock)


def get_doctor(session, doctor_id, lock=False):
    return _get(session, Doctor, doctor_id, lock)


def get_ward(session, ward_id, lock=False):
    return _get(session, Ward, ward_id, lock)


def get_admission(session, admission_id, lock=False):
    return _get(session, Admission, admission_id, lock)


def get_appointment(session, appointment_id, lock=False):
    return _get(session, Appointment, appointment_id, lock)


def get_bill(session, bill_id, lock=False):
    return _get(session, Bill, bill_id, lock)


def add(session, obj):
    session.add(obj)
    session.flush()
    return obj


# ---------- Admissions ----------

def find_current_admission(session, patient_id):
    stmt = (
        select(Admission)
        .where(Admission.patient_id == patient_id, Admission.discharge_date.is_(None))
        .limit(1)
    )
    return session.scalars(stmt).first()


def count_current_admissions(session, ward_id):
    stmt = (
        select(func.count(Admission.admission_id))
        .where(Admission.ward_id == ward_id, Admission.discharge_date.is_(None))
    )
    return session.scalar(stmt)


def occupancy_by_ward(session):
    """Map of ward_id to current occupancy, wards without patients omitted."""
    stmt = (
        select(Admission.ward_id, func.count(Admission.admission_id))
        .where(Admission.discharge_date.is_(None))
        .group_by(Admission.ward_id)
    )
    return dict(session.execute(stmt).all())


def current_patients(session, ward_id):
    """(admission, patient) pairs for everyone currently in the ward, oldest first."""
    stmt = (
        select(Admission, Patient)
        .join(Patient, Admission.patient_id == Patient.patient_id)
        .where(Admission.ward_id == ward_id, Admission.discharge_date.is_(None))
        .order_by(Admission.admission_date, Admission.admission_id)
    )
    return session.execute(stmt).all()


# ---------- Appointments ----------

def find_conflicting_appointments(session, doctor_id, at, exclude_id=None):
    """Active appointments of the doctor strictly less than an hour away from ``at``.

    Appointments exactly one hour apart do not conflict.
    """
    stmt = (
        select(Appointment)
        .where(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.appointment_date > at - CONFLICT_WINDOW,
            Appointment.appointment_date < at + CONFLICT_WINDOW,
        )
        .order_by(Appointment.appointment_date)
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.appointment_id != exclude_id)
    return session.scalars(stmt).all()


# ---------- Patients / Doctors ----------

def email_in_use(session, model, email, exclude_id=None):
    pk = model.__mapper__.primary_key[0]
    stmt = select(pk).where(model.email == email)
    if exclude_id is not None:
        stmt = stmt.where(pk != exclude_id)
    return session.scalars(stmt.limit(1)).first() is not None


def _count(session, model, **filters):
    stmt = select(func.count()).select_from(model).filter_by(**filters)
    return session.scalar(stmt)


def patient_reference_counts(session, patient_id):
    return {
        'appointments': _count(session, Appointment, patient_id=patient_id),
        'admissions': _count(session, Admission, patient_id=patient_id),
        'medical_records': _count(session, MedicalRecord, patient_id=patient_id),
        'billing': _count(session, Bill, patient_id=patient_id),
    }


def doctor_reference_counts(session, doctor_id):
    return {
        'appointments': _count(session, Appointment, doctor_id=doctor_id),
    }


# ---------- History views ----------

def patient_appointments(session, patient_id, limit):
    """(appointment, doctor) pairs, newest first."""
    stmt = (
        select(Appointment, Doctor)
        .join(Doctor, Appointment.doctor_id == Doctor.doctor_id)
        .where(Appointment.patient_id == patient_id)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_id.desc())
        .limit(limit)
    )
    return session.execute(stmt).all()


def patient_admissions(session, patient_id, limit):
    """(admission, ward) pairs, newest first."""
    stmt = (
        select(Admission, Ward)
        .join(Ward, Admission.ward_id == Ward.ward_id)
        .where(Admission.patient_id == patient_id)
        .order_by(Admission.admission_date.desc(), Admission.admission_id.desc())
        .limit(limit)
    )
    return session.execute(stmt).all()


def patient_medical_records(session, patient_id, limit):
    stmt = (
        select(MedicalRecord)
        .where(MedicalRecord.patient_id == patient_id)
        .order_by(MedicalRecord.record_date.desc(), MedicalRecord.record_id.desc())
        .limit(limit)
    )
    return session.scalars(stmt).all()


def patient_bills(session, patient_id, limit):
    stmt = (
        select(Bill)
        .where(Bill.patient_id == patient_id)
        .order_by(Bill.bill_date.desc(), Bill.bill_id.desc())
        .limit(limit)
    )
    return session.scalars(stmt).all()


def billing_totals(session, patient_id):
    """(total billed, total paid) over every bill of the patient."""
    stmt = (
        select(
            func.coalesce(func.sum(Bill.amount), 0),
            func.coalesce(func.sum(case((Bill.paid, Bill.amount), else_=0)), 0),
        )
        .where(Bill.patient_id == patient_id)
    )
    billed, paid = session.execute(stmt).one()
    return billed, paid


def doctor_appointments(session, doctor_id, limit):
    """(appointment, patient) pairs, newest first."""
    stmt = (
        select(Appointment, Patient)
        .join(Patient, Appointment.patient_id == Patient.patient_id)
        .where(Appointment.doctor_id == doctor_id)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_id.desc())
        .limit(limit)
    )
    return session.execute(stmt).all()


def doctor_appointment_counts(session, doctor_id, now):
    cancelled = Appointment.status == AppointmentStatus.CANCELLED.value
    upcoming = (Appointment.appointment_date > now) & ~cancelled
    stmt = (
        select(
            func.count(Appointment.appointment_id),
            func.count(case((upcoming, 1))),
            func.count(case((cancelled, 1))),
        )
        .where(Appointment.doctor_id == doctor_id)
    )
    total, upcoming_count, cancelled_count = session.execute(stmt).one()
    return {
        'total_appointments': total,
        'upcoming_appointments': upcoming_count,
        'cancelled_appointments': cancelled_count,
    }
