"""Tests for the admission and discharge transactions."""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

import admissions
import registration
from errors import Conflict, NotFound, ValidationError
from models import Admission


def _occupancy(provider, ward_id):
    return registration.get_ward(provider, ward_id).occupancy


def _admission_rows(provider):
    return provider.run(lambda s: s.scalar(select(func.count()).select_from(Admission)))


class TestAdmitPatient:
    """Admission control: one current stay per patient, no more than capacity per ward."""

    def test_admit_returns_admission_and_snapshots(self, provider, make_patient, make_ward):
        patient = make_patient()
        ward = make_ward('Cardiac', capacity=2)

        result = admissions.admit_patient(provider, patient.patient_id, ward.ward_id)

        assert result.admission.admission_id is not None
        assert result.admission.admission_date == date.today()
        assert result.admission.discharge_date is None
        assert result.patient.patient_id == patient.patient_id
        assert result.ward.ward_name == 'Cardiac'
        assert result.to_dict()['admission']['admission_status'] == 'Current'

    def test_explicit_admission_date(self, provider, make_patient, make_ward):
        patient = make_patient()
        ward = make_ward()

        result = admissions.admit_patient(provider, patient.patient_id, ward.ward_id, date(2024, 3, 1))

        assert result.admission.admission_date == date(2024, 3, 1)

    def test_last_bed_then_full(self, provider, make_patient, make_ward):
        """An ICU with one bed takes one patient and turns the next away."""
        icu = make_ward('ICU', capacity=1)
        first, second = make_patient(), make_patient()

        admissions.admit_patient(provider, first.patient_id, icu.ward_id)
        assert _occupancy(provider, icu.ward_id) == 1

        with pytest.raises(Conflict) as exc:
            admissions.admit_patient(provider, second.patient_id, icu.ward_id)

        assert 'at full capacity' in exc.value.message
        assert 'ICU' in exc.value.message
        assert '(1 beds)' in exc.value.message
        assert _occupancy(provider, icu.ward_id) == 1

    def test_already_admitted_checked_before_capacity(self, provider, make_patient, make_ward):
        """A current patient is rejected as already admitted even if the target ward is full."""
        ward_a = make_ward('A', capacity=1)
        ward_b = make_ward('B', capacity=1)
        resident, other = make_patient(), make_patient()
        admissions.admit_patient(provider, resident.patient_id, ward_a.ward_id)
        admissions.admit_patient(provider, other.patient_id, ward_b.ward_id)

        for ward_id in (ward_a.ward_id, ward_b.ward_id):
            with pytest.raises(Conflict) as exc:
                admissions.admit_patient(provider, resident.patient_id, ward_id)
            assert exc.value.message == 'Patient is already admitted'

    def test_already_admitted_checked_before_ward_lookup(self, provider, make_patient, make_ward):
        patient = make_patient()
        admissions.admit_patient(provider, patient.patient_id, make_ward().ward_id)

        with pytest.raises(Conflict):
            admissions.admit_patient(provider, patient.patient_id, 9999)

    def test_unknown_patient(self, provider, make_ward):
        with pytest.raises(NotFound) as exc:
            admissions.admit_patient(provider, 9999, make_ward().ward_id)
        assert exc.value.message == 'Patient not found'

    def test_unknown_ward(self, provider, make_patient):
        with pytest.raises(NotFound) as exc:
            admissions.admit_patient(provider, make_patient().patient_id, 9999)
        assert exc.value.message == 'Ward not found'

    def test_rejected_admission_writes_nothing(self, provider, make_patient, make_ward):
        icu = make_ward('ICU', capacity=1)
        admissions.admit_patient(provider, make_patient().patient_id, icu.ward_id)

        with pytest.raises(Conflict):
            admissions.admit_patient(provider, make_patient().patient_id, icu.ward_id)

        assert _admission_rows(provider) == 1


class TestDischargePatient:
    """Discharge is a one-way transition."""

    def test_occupancy_round_trip(self, provider, make_patient, make_ward):
        ward = make_ward(capacity=3)
        result = admissions.admit_patient(provider, make_patient().patient_id, ward.ward_id)
        assert _occupancy(provider, ward.ward_id) == 1

        admissions.discharge_patient(provider, result.admission.admission_id)

        assert _occupancy(provider, ward.ward_id) == 0

    def test_discharge_returns_details(self, provider, make_patient, make_ward):
        patient = make_patient(first_name='Imran', last_name='Ahmed')
        ward = make_ward('Orthopedic')
        result = admissions.admit_patient(provider, patient.patient_id, ward.ward_id, date(2024, 1, 10))

        details = admissions.discharge_patient(provider, result.admission.admission_id, date(2024, 1, 14))

        assert details.admission.discharge_date == date(2024, 1, 14)
        assert details.length_of_stay == 4
        data = details.to_dict()
        assert data['patient_first_name'] == 'Imran'
        assert data['patient_last_name'] == 'Ahmed'
        assert data['ward_name'] == 'Orthopedic'
        assert data['admission_status'] == 'Discharged'

    def test_discharge_defaults_to_today(self, provider, make_patient, make_ward):
        result = admissions.admit_patient(
            provider, make_patient().patient_id, make_ward().ward_id, date.today() - timedelta(days=2))

        details = admissions.discharge_patient(provider, result.admission.admission_id)

        assert details.admission.discharge_date == date.today()
        assert details.length_of_stay == 2

    def test_second_discharge_conflicts(self, provider, make_patient, make_ward):
        result = admissions.admit_patient(provider, make_patient().patient_id, make_ward().ward_id)
        admission_id = result.admission.admission_id
        admissions.discharge_patient(provider, admission_id, date.today())

        with pytest.raises(Conflict) as exc:
            admissions.discharge_patient(provider, admission_id, date.today() + timedelta(days=1))

        assert exc.value.message == 'Patient already discharged'
        assert admissions.get_admission(provider, admission_id).admission.discharge_date == date.today()

    def test_unknown_admission(self, provider):
        with pytest.raises(NotFound):
            admissions.discharge_patient(provider, 9999)

    def test_discharge_before_admission_rejected(self, provider, make_patient, make_ward):
        result = admissions.admit_patient(provider, make_patient().patient_id, make_ward().ward_id, date(2024, 6, 1))
        admission_id = result.admission.admission_id

        with pytest.raises(ValidationError):
            admissions.discharge_patient(provider, admission_id, date(2024, 5, 31))

        assert admissions.get_admission(provider, admission_id).admission.is_current

    def test_readmission_creates_new_row(self, provider, make_patient, make_ward):
        patient = make_patient()
        ward = make_ward()
        first = admissions.admit_patient(provider, patient.patient_id, ward.ward_id)
        admissions.discharge_patient(provider, first.admission.admission_id)

        second = admissions.admit_patient(provider, patient.patient_id, ward.ward_id)

        assert second.admission.admission_id != first.admission.admission_id
        assert _admission_rows(provider) == 2

    def test_discharge_frees_bed_for_next_patient(self, provider, make_patient, make_ward):
        icu = make_ward('ICU', capacity=1)
        first = admissions.admit_patient(provider, make_patient().patient_id, icu.ward_id)
        admissions.discharge_patient(provider, first.admission.admission_id)

        result = admissions.admit_patient(provider, make_patient().patient_id, icu.ward_id)

        assert result.ward.ward_id == icu.ward_id


class TestGetAdmission:

    def test_current_stay_measured_to_today(self, provider, make_patient, make_ward):
        result = admissions.admit_patient(
            provider, make_patient().patient_id, make_ward().ward_id, date.today() - timedelta(days=3))

        details = admissions.get_admission(provider, result.admission.admission_id)

        assert details.length_of_stay == 3
        assert details.to_dict()['discharge_date'] is None

    def test_unknown(self, provider):
        with pytest.raises(NotFound):
            admissions.get_admission(provider, 42)
