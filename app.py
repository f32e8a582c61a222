# ======================================
# Flask Backend – Hospital Management System
# ======================================

import json
import logging.config
import os

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from werkzeug.exceptions import HTTPException

import admissions
import appointments
import records
import registration
from config import Config, engine_options, logging_config
from database import TransactionProvider, configure_sqlite
from errors import HMSError, ValidationError
from models import db
from validation import (
    optional_date,
    parse_bool,
    parse_date,
    parse_gender,
    parse_id,
    parse_status,
    parse_timestamp,
    reject_unknown,
    require_changes,
    required_fields,
    required_id,
    text,
)

api = Blueprint('hms', __name__)

PATIENT_FIELDS = ('first_name', 'last_name', 'gender', 'date_of_birth', 'phone_number', 'email', 'address')
DOCTOR_FIELDS = ('first_name', 'last_name', 'specialization', 'phone_number', 'email')
APPOINTMENT_FIELDS = ('appointment_date', 'doctor_id', 'status', 'notes')


def transactions():
    return current_app.extensions['hms_transactions']


def json_body():
    try:
        data = json.loads(request.data) if request.data else {}
    except ValueError as e:
        raise ValidationError(f'Invalid JSON: {e}') from None
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')
    return data


# ======================================
# Application Factory
# ======================================

def create_app(test_config=None):
    app = Flask(__name__)

    # ---------- Configuration ----------
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', engine_options(app.config))

    logging.config.dictConfig(logging_config(app.config['LOG_LEVEL']))
    os.makedirs(app.instance_path, exist_ok=True)

    # ---------- Extensions ----------
    CORS(app, origins=app.config['CORS_ORIGINS'])
    db.init_app(app)

    # Ensure tables exist on startup and build the provider handed to the core
    with app.app_context():
        configure_sqlite(db.engine, app.config['SQLITE_BUSY_TIMEOUT'])
        db.create_all()
        app.extensions['hms_transactions'] = TransactionProvider.for_engine(db.engine)

    app.register_blueprint(api)
    register_error_handlers(app)

    @app.before_request
    def log_request():
        app.logger.debug('%s %s (%s)', request.method, request.path, request.content_type)

    return app


def register_error_handlers(app):

    @app.errorhandler(HMSError)
    def handle_domain_error(e):
        return jsonify({'msg': e.message}), e.status_code

    @app.errorhandler(PoolTimeoutError)
    def handle_pool_exhausted(e):
        app.logger.warning('Connection pool exhausted: %s', e)
        return jsonify({'msg': 'Database temporarily unavailable, retry later'}), 503

    @app.errorhandler(OperationalError)
    @app.errorhandler(DisconnectionError)
    def handle_database_unavailable(e):
        app.logger.exception('Database unavailable')
        return jsonify({'msg': 'Database temporarily unavailable, retry later'}), 503

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'msg': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception('Unhandled error on %s %s', request.method, request.path)
        return jsonify({'msg': 'Internal server error'}), 500


# ======================================
# Patient APIs
# ======================================

def _name_changes(data, names):
    values = {}
    for name in names:
        if name in data:
            values[name] = text(data, name, required=True)
    return values


@api.route('/patients', methods=['POST'])
def create_patient():
    data = json_body()
    required_fields(data, ('first_name', 'last_name', 'gender', 'date_of_birth'))
    details = registration.PatientDetails(
        first_name=text(data, 'first_name', required=True),
        last_name=text(data, 'last_name', required=True),
        gender=parse_gender(data['gender']),
        date_of_birth=parse_date(data['date_of_birth'], 'date_of_birth'),
        phone_number=text(data, 'phone_number'),
        email=text(data, 'email'),
        address=text(data, 'address'),
    )
    patient = registration.register_patient(transactions(), details)
    return jsonify({'msg': 'Patient registered', 'patient': patient.to_dict()}), 201


@api.route('/patients/<patient_id>', methods=['GET'])
def get_patient(patient_id):
    history = registration.patient_history(transactions(), parse_id(patient_id, 'patient ID'))
    return jsonify(history.to_dict())


@api.route('/patients/<patient_id>', methods=['PUT'])
def update_patient(patient_id):
    patient_id = parse_id(patient_id, 'patient ID')
    data = json_body()
    data.pop('patient_id', None)
    reject_unknown(data, PATIENT_FIELDS)
    require_changes(data)

    changes = registration.PatientChanges(
        phone_number=text(data, 'phone_number'),
        email=text(data, 'email'),
        address=text(data, 'address'),
        **_name_changes(data, ('first_name', 'last_name')),
    )
    if data.get('gender') is not None:
        changes.gender = parse_gender(data['gender'])
    if data.get('date_of_birth') is not None:
        changes.date_of_birth = parse_date(data['date_of_birth'], 'date_of_birth')

    patient = registration.update_patient(transactions(), patient_id, changes)
    return jsonify({'msg': 'Patient updated', 'patient': patient.to_dict()})


@api.route('/patients/<patient_id>', methods=['DELETE'])
def delete_patient(patient_id):
    registration.delete_patient(transactions(), parse_id(patient_id, 'patient ID'))
    return jsonify({'msg': 'Patient deleted'})


# ======================================
# Doctor APIs
# ======================================

@api.route('/doctors', methods=['POST'])
def create_doctor():
    data = json_body()
    required_fields(data, ('first_name', 'last_name', 'specialization'))
    details = registration.DoctorDetails(
        first_name=text(data, 'first_name', required=True),
        last_name=text(data, 'last_name', required=True),
        specialization=text(data, 'specialization', required=True),
        phone_number=text(data, 'phone_number'),
        email=text(data, 'email'),
    )
    doctor = registration.register_doctor(transactions(), details)
    return jsonify({'msg': 'Doctor registered', 'doctor': doctor.to_dict()}), 201


@api.route('/doctors/<doctor_id>', methods=['GET'])
def get_doctor(doctor_id):
    schedule = registration.doctor_schedule(transactions(), parse_id(doctor_id, 'doctor ID'))
    return jsonify(schedule.to_dict())


@api.route('/doctors/<doctor_id>', methods=['PUT'])
def update_doctor(doctor_id):
    doctor_id = parse_id(doctor_id, 'doctor ID')
    data = json_body()
    data.pop('doctor_id', None)
    reject_unknown(data, DOCTOR_FIELDS)
    require_changes(data)

    changes = registration.DoctorChanges(
        phone_number=text(data, 'phone_number'),
        email=text(data, 'email'),
        **_name_changes(data, ('first_name', 'last_name', 'specialization')),
    )
    doctor = registration.update_doctor(transactions(), doctor_id, changes)
    return jsonify({'msg': 'Doctor updated', 'doctor': doctor.to_dict()})


@api.route('/doctors/<doctor_id>', methods=['DELETE'])
def delete_doctor(doctor_id):
    registration.delete_doctor(transactions(), parse_id(doctor_id, 'doctor ID'))
    return jsonify({'msg': 'Doctor deleted'})


# ======================================
# Ward / Admission APIs
# ======================================

@api.route('/wards', methods=['GET'])
def get_wards():
    wards = registration.list_wards(transactions())
    return jsonify([w.to_dict(with_patients=False) for w in wards])


@api.route('/wards', methods=['POST'])
def create_ward():
    data = json_body()
    required_fields(data, ('ward_name', 'capacity'))
    ward = registration.create_ward(
        transactions(),
        ward_name=text(data, 'ward_name', required=True),
        ward_type=text(data, 'ward_type'),
        capacity=data['capacity'],
    )
    return jsonify({'msg': 'Ward created', 'ward': ward.to_dict()}), 201


@api.route('/wards/<ward_id>', methods=['GET'])
def get_ward(ward_id):
    ward = registration.get_ward(transactions(), parse_id(ward_id, 'ward ID'))
    return jsonify({'ward': ward.to_dict()})


@api.route('/admissions', methods=['POST'])
def admit_patient():
    data = json_body()
    result = admissions.admit_patient(
        transactions(),
        patient_id=required_id(data, 'patient_id', 'patientId'),
        ward_id=required_id(data, 'ward_id', 'wardId'),
        admission_date=optional_date(data, 'admission_date', 'admissionDate'),
    )
    return jsonify({'msg': 'Patient admitted', **result.to_dict()}), 201


@api.route('/admissions/<admission_id>', methods=['GET'])
def get_admission(admission_id):
    details = admissions.get_admission(transactions(), parse_id(admission_id, 'admission ID'))
    return jsonify({'admission': details.to_dict()})


@api.route('/admissions/<admission_id>/discharge', methods=['PUT'])
def discharge_patient(admission_id):
    admission_id = parse_id(admission_id, 'admission ID')
    data = json_body()
    details = admissions.discharge_patient(
        transactions(),
        admission_id,
        discharge_date=optional_date(data, 'discharge_date', 'dischargeDate'),
    )
    return jsonify({'msg': 'Patient discharged', 'admission': details.to_dict()})


# ======================================
# Appointment APIs
# ======================================

@api.route('/appointments', methods=['POST'])
def create_appointment():
    data = json_body()
    patient_id = required_id(data, 'patient_id', 'patientId')
    doctor_id = required_id(data, 'doctor_id', 'doctorId')
    if data.get('appointment_date') in (None, ''):
        raise ValidationError('appointment_date is required')
    appointment_date = parse_timestamp(data['appointment_date'])
    status = parse_status(data['status']) if data.get('status') is not None else None

    result = appointments.create_appointment(
        transactions(),
        patient_id,
        doctor_id,
        appointment_date,
        status=status or appointments.AppointmentStatus.SCHEDULED,
        notes=text(data, 'notes'),
    )
    return jsonify({'msg': 'Appointment created', **result.to_dict()}), 201


@api.route('/appointments/<appointment_id>', methods=['GET'])
def get_appointment(appointment_id):
    appointment = appointments.get_appointment(transactions(), parse_id(appointment_id, 'appointment ID'))
    return jsonify({'appointment': appointment.to_dict()})


@api.route('/appointments/<appointment_id>', methods=['PUT'])
def update_appointment(appointment_id):
    appointment_id = parse_id(appointment_id, 'appointment ID')
    data = json_body()
    data.pop('appointment_id', None)
    reject_unknown(data, APPOINTMENT_FIELDS)
    require_changes(data)

    changes = appointments.AppointmentChanges(notes=text(data, 'notes'))
    if data.get('appointment_date') is not None:
        changes.appointment_date = parse_timestamp(data['appointment_date'])
    if data.get('doctor_id') is not None:
        changes.doctor_id = parse_id(data['doctor_id'], 'doctor_id')
    if data.get('status') is not None:
        changes.status = parse_status(data['status'])

    appointment = appointments.update_appointment(transactions(), appointment_id, changes)
    return jsonify({'msg': 'Appointment updated', 'appointment': appointment.to_dict()})


@api.route('/appointments/<appointment_id>', methods=['DELETE'])
def cancel_appointment(appointment_id):
    appointment = appointments.cancel_appointment(transactions(), parse_id(appointment_id, 'appointment ID'))
    return jsonify({'msg': 'Appointment cancelled', 'appointment': appointment.to_dict()})


# ======================================
# Medical Record / Billing APIs
# ======================================

@api.route('/medical-records', methods=['POST'])
def create_medical_record():
    data = json_body()
    patient_id = required_id(data, 'patient_id', 'patientId')
    required_fields(data, ('diagnosis', 'treatment'))
    record, patient = records.create_medical_record(
        transactions(),
        patient_id,
        diagnosis=text(data, 'diagnosis', required=True),
        treatment=text(data, 'treatment', required=True),
        record_date=optional_date(data, 'record_date', 'recordDate'),
    )
    return jsonify({
        'msg': 'Medical record created',
        'medical_record': record.to_dict(),
        'patient': patient.to_dict(),
    }), 201


@api.route('/billing', methods=['POST'])
def create_bill():
    data = json_body()
    patient_id = required_id(data, 'patient_id', 'patientId')
    required_fields(data, ('amount',))
    amount = data['amount']
    if isinstance(amount, bool):
        raise ValidationError('Amount must be a positive number')
    paid = parse_bool(data['paid'], 'paid') if 'paid' in data else False

    bill, patient = records.create_bill(
        transactions(),
        patient_id,
        amount,
        bill_date=optional_date(data, 'bill_date', 'billDate'),
        paid=paid,
    )
    return jsonify({'msg': 'Bill created', 'bill': bill.to_dict(), 'patient': patient.to_dict()}), 201


@api.route('/billing/<bill_id>/pay', methods=['PUT'])
def pay_bill(bill_id):
    bill = records.pay_bill(transactions(), parse_id(bill_id, 'bill ID'))
    return jsonify({'msg': 'Bill marked as paid', 'bill': bill.to_dict()})


# ======================================
# Run
# ======================================

if __name__ == '__main__':
    create_app().run(debug=True)
