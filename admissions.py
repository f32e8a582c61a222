# ======================================
# Admission / Discharge Transactions
# ======================================

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

import repositories as repo
from errors import Conflict, NotFound, ValidationError
from models import Admission, Patient, Ward

logger = logging.getLogger(__name__)


@dataclass
class AdmissionResult:
    admission: Admission
    patient: Patient
    ward: Ward

    def to_dict(self):
        return {
            'admission': self.admission.to_dict(),
            'patient': self.patient.to_dict(),
            'ward': self.ward.to_dict(),
        }


@dataclass
class AdmissionDetails:
    admission: Admission
    patient_first_name: str
    patient_last_name: str
    ward_name: str
    length_of_stay: int

    def to_dict(self):
        data = self.admission.to_dict()
        data.update(
            patient_first_name=self.patient_first_name,
            patient_last_name=self.patient_last_name,
            ward_name=self.ward_name,
            length_of_stay=self.length_of_stay,
        )
        return data


def length_of_stay(admission, today=None):
    """Days in hospital, up to today while the admission is still current."""
    end = admission.discharge_date or today or date.today()
    return (end - admission.admission_date).days


def _details(session, admission):
    patient = repo.get_patient(session, admission.patient_id)
    ward = repo.get_ward(session, admission.ward_id)
    return AdmissionDetails(
        admission=admission,
        patient_first_name=patient.first_name,
        patient_last_name=patient.last_name,
        ward_name=ward.ward_name,
        length_of_stay=length_of_stay(admission),
    )


def _admit(session, patient_id, ward_id, admission_date):
    # Patient row lock keeps the same patient from being admitted twice in parallel
    patient = repo.get_patient(session, patient_id, lock=True)
    if patient is None:
        raise NotFound('Patient not found')

    if repo.find_current_admission(session, patient_id) is not None:
        logger.warning('Admission rejected: patient %s is already admitted', patient_id)
        raise Conflict('Patient is already admitted')

    # Held until commit/rollback: admissions into this ward queue up here
    ward = repo.get_ward(session, ward_id, lock=True)
    if ward is None:
        raise NotFound('Ward not found')

    occupancy = repo.count_current_admissions(session, ward_id)
    if occupancy >= ward.capacity:
        logger.warning('Admission rejected: ward %s full (%s/%s)', ward_id, occupancy, ward.capacity)
        raise Conflict(f'Ward {ward.ward_name} is at full capacity ({ward.capacity} beds)')

    admission = repo.add(session, Admission(
        patient_id=patient_id,
        ward_id=ward_id,
        admission_date=admission_date,
        discharge_date=None,
    ))
    return AdmissionResult(admission=admission, patient=patient, ward=ward)


def admit_patient(provider, patient_id, ward_id, admission_date: Optional[date] = None):
    """Admit a patient into a ward if they are not already admitted and a bed is free.

    Raises NotFound for an unknown patient or ward and Conflict when the
    patient already has a current admission or the ward is at capacity.
    """
    result = provider.run(_admit, patient_id, ward_id, admission_date or date.today())
    logger.info('Patient %s admitted to ward %s (admission %s)',
                patient_id, ward_id, result.admission.admission_id)
    return result


def _discharge(session, admission_id, discharge_date):
    admission = repo.get_admission(session, admission_id, lock=True)
    if admission is None:
        raise NotFound('Admission not found')
    if not admission.is_current:
        raise Conflict('Patient already discharged')
    if discharge_date < admission.admission_date:
        raise ValidationError('Discharge date cannot be before the admission date')

    admission.discharge_date = discharge_date
    session.flush()
    return _details(session, admission)


def discharge_patient(provider, admission_id, discharge_date: Optional[date] = None):
    details = provider.run(_discharge, admission_id, discharge_date or date.today())
    logger.info('Admission %s discharged after %s days', admission_id, details.length_of_stay)
    return details


def get_admission(provider, admission_id):
    def load(session):
        admission = repo.get_admission(session, admission_id)
        if admission is None:
            raise NotFound('Admission not found')
        return _details(session, admission)

    return provider.run(load)
