# ======================================
# Patient / Doctor / Ward Registration
# ======================================

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import repositories as repo
from admissions import length_of_stay
from errors import Conflict, NotFound, ValidationError
from models import Doctor, Patient, Ward

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
ADMISSION_HISTORY_LIMIT = 10
# wards.capacity is a 32-bit INTEGER
MAX_CAPACITY = 2 ** 31 - 1


def _normalize_email(email):
    return email.strip().lower() if email else None


@dataclass
class PatientDetails:
    first_name: str
    last_name: str
    gender: str
    date_of_birth: date
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass
class PatientChanges:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass
class DoctorDetails:
    first_name: str
    last_name: str
    specialization: str
    phone_number: Optional[str] = None
    email: Optional[str] = None


@dataclass
class DoctorChanges:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    specialization: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None


def _apply(obj, changes):
    for f in fields(changes):
        value = getattr(changes, f.name)
        if value is not None:
            setattr(obj, f.name, value)


def _lookup(session, getter, pk, label, lock=False):
    obj = getter(session, pk, lock=lock)
    if obj is None:
        raise NotFound(f'{label} not found')
    return obj


def _ensure_email_free(session, model, email, exclude_id=None):
    if email and repo.email_in_use(session, model, email, exclude_id=exclude_id):
        raise Conflict('Email already exists')


def _run_with_unique_email(provider, unit_of_work, model, email, exclude_id=None):
    """Run a write whose pre-check can lose a race on the unique email index.

    A concurrent writer can insert the same email between the check and the
    flush; the resulting unique violation is reported as the same Conflict.
    """
    try:
        return provider.run(unit_of_work)
    except IntegrityError as e:
        if email and provider.run(
                lambda session: repo.email_in_use(session, model, email, exclude_id=exclude_id)):
            logger.warning('Duplicate %s email rejected by unique index', model.__tablename__)
            raise Conflict('Email already exists') from e
        raise


# ---------- Patients ----------

def register_patient(provider, details: PatientDetails):
    details = replace(details, email=_normalize_email(details.email))

    def create(session):
        _ensure_email_free(session, Patient, details.email)
        return repo.add(session, Patient(**vars(details)))

    patient = _run_with_unique_email(provider, create, Patient, details.email)
    logger.info('Patient %s registered', patient.patient_id)
    return patient


def update_patient(provider, patient_id, changes: PatientChanges):
    changes = replace(changes, email=_normalize_email(changes.email))

    def update(session):
        patient = _lookup(session, repo.get_patient, patient_id, 'Patient', lock=True)
        _ensure_email_free(session, Patient, changes.email, exclude_id=patient_id)
        _apply(patient, changes)
        session.flush()
        return patient

    return _run_with_unique_email(provider, update, Patient, changes.email, exclude_id=patient_id)


def delete_patient(provider, patient_id):
    """Remove a patient that nothing references yet."""

    def delete(session):
        patient = _lookup(session, repo.get_patient, patient_id, 'Patient', lock=True)
        related = repo.patient_reference_counts(session, patient_id)
        if any(related.values()):
            raise Conflict('Cannot delete patient with existing appointments, '
                           'admissions, medical records or billing')
        session.delete(patient)
        return patient

    patient = provider.run(delete)
    logger.info('Patient %s deleted', patient_id)
    return patient


def get_patient(provider, patient_id):
    return provider.run(lambda session: _lookup(session, repo.get_patient, patient_id, 'Patient'))


def _money(value):
    return Decimal(str(value)).quantize(Decimal('0.01'))


@dataclass
class PatientHistory:
    patient: Patient
    appointments: List[dict]
    medical_records: List[dict]
    billing: List[dict]
    admissions: List[dict]
    summary: dict

    def to_dict(self):
        return {
            'patient': self.patient.to_dict(),
            'appointments': self.appointments,
            'medical_records': self.medical_records,
            'billing': self.billing,
            'admissions': self.admissions,
            'summary': self.summary,
        }


def patient_history(provider, patient_id, today=None):
    """Patient with recent appointments, records, bills and stays.

    Lists hold the most recent entries only; the summary covers everything.
    """
    today = today or date.today()

    def load(session):
        patient = _lookup(session, repo.get_patient, patient_id, 'Patient')
        appointments = [
            dict(appointment.to_dict(),
                 doctor_first_name=doctor.first_name,
                 doctor_last_name=doctor.last_name,
                 specialization=doctor.specialization)
            for appointment, doctor in repo.patient_appointments(session, patient_id, HISTORY_LIMIT)
        ]
        admissions = [
            dict(admission.to_dict(),
                 ward_name=ward.ward_name,
                 length_of_stay=length_of_stay(admission, today))
            for admission, ward in repo.patient_admissions(session, patient_id, ADMISSION_HISTORY_LIMIT)
        ]
        medical_records = [r.to_dict() for r in repo.patient_medical_records(session, patient_id, HISTORY_LIMIT)]
        billing = [b.to_dict() for b in repo.patient_bills(session, patient_id, HISTORY_LIMIT)]

        counts = repo.patient_reference_counts(session, patient_id)
        billed, paid = (_money(v) for v in repo.billing_totals(session, patient_id))
        summary = {
            'total_appointments': counts['appointments'],
            'total_medical_records': counts['medical_records'],
            'total_admissions': counts['admissions'],
            'total_billed': float(billed),
            'amount_paid': float(paid),
            'outstanding_balance': float(billed - paid),
            'currently_admitted': repo.find_current_admission(session, patient_id) is not None,
        }
        return PatientHistory(patient, appointments, medical_records, billing, admissions, summary)

    return provider.run(load)


# ---------- Doctors ----------

def register_doctor(provider, details: DoctorDetails):
    details = replace(details, email=_normalize_email(details.email))

    def create(session):
        _ensure_email_free(session, Doctor, details.email)
        return repo.add(session, Doctor(**vars(details)))

    doctor = _run_with_unique_email(provider, create, Doctor, details.email)
    logger.info('Doctor %s registered', doctor.doctor_id)
    return doctor


def update_doctor(provider, doctor_id, changes: DoctorChanges):
    changes = replace(changes, email=_normalize_email(changes.email))

    def update(session):
        doctor = _lookup(session, repo.get_doctor, doctor_id, 'Doctor', lock=True)
        _ensure_email_free(session, Doctor, changes.email, exclude_id=doctor_id)
        _apply(doctor, changes)
        session.flush()
        return doctor

    return _run_with_unique_email(provider, update, Doctor, changes.email, exclude_id=doctor_id)


def delete_doctor(provider, doctor_id):
    def delete(session):
        doctor = _lookup(session, repo.get_doctor, doctor_id, 'Doctor', lock=True)
        if any(repo.doctor_reference_counts(session, doctor_id).values()):
            raise Conflict('Cannot delete doctor with appointments')
        session.delete(doctor)
        return doctor

    doctor = provider.run(delete)
    logger.info('Doctor %s deleted', doctor_id)
    return doctor


def get_doctor(provider, doctor_id):
    return provider.run(lambda session: _lookup(session, repo.get_doctor, doctor_id, 'Doctor'))


@dataclass
class DoctorSchedule:
    doctor: Doctor
    appointments: List[dict]
    summary: dict

    def to_dict(self):
        return {'doctor': self.doctor.to_dict(), 'appointments': self.appointments, 'summary': self.summary}


def doctor_schedule(provider, doctor_id, now=None):
    """Doctor with recent appointments; upcoming excludes cancelled ones."""
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)

    def load(session):
        doctor = _lookup(session, repo.get_doctor, doctor_id, 'Doctor')
        appointments = [
            dict(appointment.to_dict(),
                 patient_first_name=patient.first_name,
                 patient_last_name=patient.last_name,
                 patient_phone=patient.phone_number)
            for appointment, patient in repo.doctor_appointments(session, doctor_id, HISTORY_LIMIT)
        ]
        summary = repo.doctor_appointment_counts(session, doctor_id, now)
        return DoctorSchedule(doctor, appointments, summary)

    return provider.run(load)


# ---------- Wards ----------

@dataclass
class WardOccupancy:
    ward: Ward
    occupancy: int
    current_patients: List[dict] = field(default_factory=list)

    @property
    def available_beds(self):
        return self.ward.capacity - self.occupancy

    def to_dict(self, with_patients=True):
        data = self.ward.to_dict()
        data.update(current_occupancy=self.occupancy, available_beds=self.available_beds)
        if with_patients:
            data['current_patients'] = self.current_patients
        return data


def create_ward(provider, ward_name, ward_type, capacity):
    if isinstance(capacity, bool) or not isinstance(capacity, int) or not 0 < capacity <= MAX_CAPACITY:
        raise ValidationError('Capacity must be a positive integer')

    ward = provider.run(lambda session: repo.add(
        session, Ward(ward_name=ward_name, ward_type=ward_type, capacity=capacity)))
    logger.info('Ward %s created with %s beds', ward.ward_id, capacity)
    return ward


def get_ward(provider, ward_id):
    """Ward with its occupancy and the patients currently in it."""

    def load(session):
        ward = _lookup(session, repo.get_ward, ward_id, 'Ward')
        today = date.today()
        patients = [
            {
                'admission_id': admission.admission_id,
                'admission_date': admission.admission_date.isoformat(),
                'patient_id': patient.patient_id,
                'patient_first_name': patient.first_name,
                'patient_last_name': patient.last_name,
                'days_admitted': length_of_stay(admission, today),
            }
            for admission, patient in repo.current_patients(session, ward_id)
        ]
        return WardOccupancy(ward=ward, occupancy=len(patients), current_patients=patients)

    return provider.run(load)


def list_wards(provider):
    def load(session):
        occupancy = repo.occupancy_by_ward(session)
        wards = session.scalars(select(Ward).order_by(Ward.ward_name)).all()
        return [WardOccupancy(ward=w, occupancy=occupancy.get(w.ward_id, 0)) for w in wards]

    return provider.run(load)
