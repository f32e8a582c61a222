# ======================================
# Appointment Transactions
# ======================================

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Optional

import repositories as repo
from errors import Conflict, NotFound
from models import ACTIVE_STATUSES, Appointment, AppointmentStatus, Doctor, Patient

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = 'Doctor has a conflicting appointment within 1 hour of this time'


@dataclass
class AppointmentResult:
    appointment: Appointment
    patient: Patient
    doctor: Doctor

    def to_dict(self):
        return {
            'appointment': self.appointment.to_dict(),
            'patient': self.patient.to_dict(),
            'doctor': self.doctor.to_dict(),
        }


@dataclass
class AppointmentChanges:
    """Fields an update may touch. None leaves the stored value alone."""

    appointment_date: Optional[datetime] = None
    doctor_id: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None

    def supplied(self):
        return {f.name for f in fields(self) if getattr(self, f.name) is not None}


def _lock_doctor(session, doctor_id):
    # Serializes schedule changes per doctor for the rest of the transaction
    doctor = repo.get_doctor(session, doctor_id, lock=True)
    if doctor is None:
        raise NotFound('Doctor not found')
    return doctor


def _check_schedule(session, doctor_id, at, exclude_id=None):
    clashes = repo.find_conflicting_appointments(session, doctor_id, at, exclude_id=exclude_id)
    if clashes:
        logger.warning('Doctor %s already booked near %s (appointment %s)',
                       doctor_id, at.isoformat(), clashes[0].appointment_id)
        raise Conflict(CONFLICT_MESSAGE)


def _create(session, patient_id, doctor_id, appointment_date, status, notes):
    patient = repo.get_patient(session, patient_id)
    if patient is None:
        raise NotFound('Patient not found')

    doctor = _lock_doctor(session, doctor_id)
    _check_schedule(session, doctor_id, appointment_date)

    appointment = repo.add(session, Appointment(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        status=AppointmentStatus(status).value,
        notes=notes,
    ))
    return AppointmentResult(appointment=appointment, patient=patient, doctor=doctor)


def create_appointment(provider, patient_id, doctor_id, appointment_date,
                       status=AppointmentStatus.SCHEDULED, notes=None):
    """Book a patient with a doctor.

    Fails with NotFound for an unknown patient or doctor, and with Conflict
    when the doctor has a Scheduled or Completed appointment less than one
    hour away from ``appointment_date``.
    """
    result = provider.run(_create, patient_id, doctor_id, appointment_date, status, notes)
    logger.info('Appointment %s created for doctor %s at %s',
                result.appointment.appointment_id, doctor_id, appointment_date.isoformat())
    return result


def _update(session, appointment_id, changes):
    appointment = repo.get_appointment(session, appointment_id, lock=True)
    if appointment is None:
        raise NotFound('Appointment not found')

    supplied = changes.supplied()
    doctor_id = changes.doctor_id if changes.doctor_id is not None else appointment.doctor_id
    at = changes.appointment_date if changes.appointment_date is not None else appointment.appointment_date

    moved = bool(supplied & {'appointment_date', 'doctor_id'})
    reactivated = (
        changes.status is not None
        and appointment.status not in ACTIVE_STATUSES
        and AppointmentStatus(changes.status).value in ACTIVE_STATUSES
    )

    if moved or reactivated:
        _lock_doctor(session, doctor_id)
        _check_schedule(session, doctor_id, at, exclude_id=appointment.appointment_id)

    if changes.appointment_date is not None:
        appointment.appointment_date = changes.appointment_date
    if changes.doctor_id is not None:
        appointment.doctor_id = changes.doctor_id
    if changes.status is not None:
        appointment.status = AppointmentStatus(changes.status).value
    if changes.notes is not None:
        appointment.notes = changes.notes

    session.flush()
    return appointment


def update_appointment(provider, appointment_id, changes: AppointmentChanges):
    appointment = provider.run(_update, appointment_id, changes)
    logger.info('Appointment %s updated (%s)', appointment_id, ', '.join(sorted(changes.supplied())))
    return appointment


def _cancel(session, appointment_id):
    appointment = repo.get_appointment(session, appointment_id, lock=True)
    if appointment is None:
        raise NotFound('Appointment not found')
    # Kept for the audit trail, never deleted
    appointment.status = AppointmentStatus.CANCELLED.value
    session.flush()
    return appointment


def cancel_appointment(provider, appointment_id):
    appointment = provider.run(_cancel, appointment_id)
    logger.info('Appointment %s cancelled', appointment_id)
    return appointment


def get_appointment(provider, appointment_id):
    def load(session):
        appointment = repo.get_appointment(session, appointment_id)
        if appointment is None:
            raise NotFound('Appointment not found')
        return appointment

    return provider.run(load)
