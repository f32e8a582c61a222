"""Concurrent writers racing for the same bed or the same time slot."""

import threading
from datetime import datetime

import admissions
import appointments
import registration
from errors import Conflict

WORKERS = 8


def race(target, args_list):
    """Start every call at once and collect ('ok', result) or ('err', exception)."""
    barrier = threading.Barrier(len(args_list))
    outcomes = []
    lock = threading.Lock()

    def worker(args):
        barrier.wait()
        try:
            outcome = ('ok', target(*args))
        except Exception as e:
            outcome = ('err', e)
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(args,)) for args in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def _split(outcomes):
    ok = [value for kind, value in outcomes if kind == 'ok']
    errors = [value for kind, value in outcomes if kind == 'err']
    return ok, errors


def test_last_free_bed_goes_to_one_patient(provider, make_patient, make_ward):
    ward = make_ward('ICU', capacity=1)
    patients = [make_patient() for _ in range(WORKERS)]

    outcomes = race(admissions.admit_patient,
                    [(provider, p.patient_id, ward.ward_id) for p in patients])

    ok, errors = _split(outcomes)
    assert len(ok) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, Conflict) for e in errors)
    assert registration.get_ward(provider, ward.ward_id).occupancy == 1


def test_capacity_holds_with_several_free_beds(provider, make_patient, make_ward):
    ward = make_ward('General', capacity=3)
    patients = [make_patient() for _ in range(WORKERS)]

    outcomes = race(admissions.admit_patient,
                    [(provider, p.patient_id, ward.ward_id) for p in patients])

    ok, errors = _split(outcomes)
    assert len(ok) == 3
    assert all(isinstance(e, Conflict) for e in errors)
    assert registration.get_ward(provider, ward.ward_id).occupancy == 3


def test_same_patient_into_different_wards(provider, make_patient, make_ward):
    patient = make_patient()
    wards = [make_ward(f'Ward {i}', capacity=5) for i in range(4)]

    outcomes = race(admissions.admit_patient,
                    [(provider, patient.patient_id, w.ward_id) for w in wards])

    ok, errors = _split(outcomes)
    assert len(ok) == 1
    assert all(isinstance(e, Conflict) for e in errors)


def test_same_slot_booked_once(provider, make_patient, make_doctor):
    doctor = make_doctor()
    patients = [make_patient() for _ in range(WORKERS)]
    at = datetime(2025, 3, 3, 10, 0)

    outcomes = race(appointments.create_appointment,
                    [(provider, p.patient_id, doctor.doctor_id, at) for p in patients])

    ok, errors = _split(outcomes)
    assert len(ok) == 1
    assert all(isinstance(e, Conflict) for e in errors)
