"""Pytest configuration and fixtures."""

import itertools
from datetime import date

import pytest

import registration
from app import create_app
from models import db


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'hms.db'}",
        'LOG_LEVEL': 'WARNING',
    })
    yield app
    with app.app_context():
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def provider(app):
    return app.extensions['hms_transactions']


@pytest.fixture
def make_patient(provider):
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        details = registration.PatientDetails(
            first_name='Ayesha',
            last_name=f'Khan-{n}',
            gender='F',
            date_of_birth=date(1990, 5, 17),
            email=f'patient{n}@example.com',
        )
        for key, value in overrides.items():
            setattr(details, key, value)
        return registration.register_patient(provider, details)

    return _make


@pytest.fixture
def make_doctor(provider):
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        details = registration.DoctorDetails(
            first_name='Asim',
            last_name=f'Hussain-{n}',
            specialization='Cardiology',
            email=f'doctor{n}@example.com',
        )
        for key, value in overrides.items():
            setattr(details, key, value)
        return registration.register_doctor(provider, details)

    return _make


@pytest.fixture
def make_ward(provider):
    def _make(name='General', capacity=10, ward_type='General'):
        return registration.create_ward(provider, name, ward_type, capacity)

    return _make
