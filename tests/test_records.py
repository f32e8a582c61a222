"""Tests for medical records and billing."""

from datetime import date

import pytest

import records
from errors import Conflict, NotFound, ValidationError


class TestMedicalRecords:

    def test_create(self, provider, make_patient):
        patient = make_patient()

        record, owner = records.create_medical_record(
            provider, patient.patient_id, ' Hypertension ', 'Amlodipine 5mg', date(2025, 2, 1))

        assert record.diagnosis == 'Hypertension'
        assert record.record_date == date(2025, 2, 1)
        assert owner.patient_id == patient.patient_id

    def test_defaults_to_today(self, provider, make_patient):
        record, _ = records.create_medical_record(provider, make_patient().patient_id, 'Flu', 'Rest')

        assert record.record_date == date.today()

    def test_unknown_patient(self, provider):
        with pytest.raises(NotFound):
            records.create_medical_record(provider, 9999, 'Flu', 'Rest')


class TestBilling:

    def test_create_bill(self, provider, make_patient):
        bill, patient = records.create_bill(provider, make_patient().patient_id, '150.5')

        assert bill.to_dict()['amount'] == 150.5
        assert bill.paid is False
        assert bill.bill_date == date.today()

    @pytest.mark.parametrize('amount', [0, -10, 'abc', 'NaN', 'Infinity', None])
    def test_amount_must_be_positive(self, provider, make_patient, amount):
        with pytest.raises(ValidationError):
            records.create_bill(provider, make_patient().patient_id, amount)

    @pytest.mark.parametrize('amount', [0.001, '0.004', 1e30, '100000000'])
    def test_amount_must_fit_in_cents(self, provider, make_patient, amount):
        with pytest.raises(ValidationError):
            records.create_bill(provider, make_patient().patient_id, amount)

    def test_amount_is_rounded_to_cents(self, provider, make_patient):
        bill, _ = records.create_bill(provider, make_patient().patient_id, '19.999')

        assert bill.to_dict()['amount'] == 20.0

    def test_largest_amount(self, provider, make_patient):
        bill, _ = records.create_bill(provider, make_patient().patient_id, '99999999.99')

        assert bill.to_dict()['amount'] == 99999999.99

    def test_amount_checked_before_patient_lookup(self, provider):
        with pytest.raises(ValidationError):
            records.create_bill(provider, 9999, -1)

    def test_unknown_patient(self, provider):
        with pytest.raises(NotFound):
            records.create_bill(provider, 9999, 10)

    def test_pay_once(self, provider, make_patient):
        bill, _ = records.create_bill(provider, make_patient().patient_id, 80)

        paid = records.pay_bill(provider, bill.bill_id)
        assert paid.paid is True

        with pytest.raises(Conflict) as exc:
            records.pay_bill(provider, bill.bill_id)
        assert exc.value.message == 'Bill is already paid'

    def test_pay_unknown(self, provider):
        with pytest.raises(NotFound):
            records.pay_bill(provider, 9999)
