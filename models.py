# ======================================
# Database Models
# ======================================

import enum

from flask_sqlalchemy import SQLAlchemy

# Single shared SQLAlchemy instance initialized in app.py
db = SQLAlchemy()


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = 'Scheduled'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'
    NO_SHOW = 'No-Show'


# Only these statuses occupy a slot in a doctor's schedule
ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.COMPLETED.value)


def _iso(value):
    return value.isoformat() if value is not None else None


class Patient(db.Model):
    __tablename__ = 'patients'

    patient_id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    gender = db.Column(db.String(10), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    phone_number = db.Column(db.String(20))
    email = db.Column(db.String(120), unique=True)
    address = db.Column(db.Text)

    __table_args__ = (
        db.CheckConstraint("gender IN ('M', 'F', 'Other')", name='ck_patients_gender'),
    )

    def to_dict(self):
        return {
            'patient_id': self.patient_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'gender': self.gender,
            'date_of_birth': _iso(self.date_of_birth),
            'phone_number': self.phone_number,
            'email': self.email,
            'address': self.address,
        }


class Doctor(db.Model):
    __tablename__ = 'doctors'

    doctor_id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    specialization = db.Column(db.String(100), nullable=False)
    phone_number = db.Column(db.String(20))
    email = db.Column(db.String(120), unique=True)

    def to_dict(self):
        return {
            'doctor_id': self.doctor_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'specialization': self.specialization,
            'phone_number': self.phone_number,
            'email': self.email,
        }


class Ward(db.Model):
    __tablename__ = 'wards'

    ward_id = db.Column(db.Integer, primary_key=True)
    ward_name = db.Column(db.String(100), nullable=False)
    ward_type = db.Column(db.String(50))
    capacity = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.CheckConstraint('capacity > 0', name='ck_wards_capacity'),
    )

    def to_dict(self):
        return {
            'ward_id': self.ward_id,
            'ward_name': self.ward_name,
            'ward_type': self.ward_type,
            'capacity': self.capacity,
        }


class Admission(db.Model):
    __tablename__ = 'admissions'

    admission_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    ward_id = db.Column(db.Integer, db.ForeignKey('wards.ward_id'), nullable=False, index=True)
    admission_date = db.Column(db.Date, nullable=False)
    # NULL while the patient still occupies a bed
    discharge_date = db.Column(db.Date)

    @property
    def is_current(self):
        return self.discharge_date is None

    def to_dict(self):
        return {
            'admission_id': self.admission_id,
            'patient_id': self.patient_id,
            'ward_id': self.ward_id,
            'admission_date': _iso(self.admission_date),
            'discharge_date': _iso(self.discharge_date),
            'admission_status': 'Current' if self.is_current else 'Discharged',
        }


class Appointment(db.Model):
    __tablename__ = 'appointments'

    appointment_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.doctor_id'), nullable=False, index=True)
    appointment_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    notes = db.Column(db.Text)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('Scheduled', 'Completed', 'Cancelled', 'No-Show')",
            name='ck_appointments_status',
        ),
        db.Index('ix_appointments_doctor_date', 'doctor_id', 'appointment_date'),
    )

    def to_dict(self):
        return {
            'appointment_id': self.appointment_id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'appointment_date': _iso(self.appointment_date),
            'status': self.status,
            'notes': self.notes,
        }


class MedicalRecord(db.Model):
    __tablename__ = 'medical_records'

    record_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    diagnosis = db.Column(db.Text, nullable=False)
    treatment = db.Column(db.Text, nullable=False)
    record_date = db.Column(db.Date, nullable=False)

    def to_dict(self):
        return {
            'record_id': self.record_id,
            'patient_id': self.patient_id,
            'diagnosis': self.diagnosis,
            'treatment': self.treatment,
            'record_date': _iso(self.record_date),
        }


class Bill(db.Model):
    __tablename__ = 'billing'

    bill_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    bill_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_billing_amount'),
    )

    def to_dict(self):
        return {
            'bill_id': self.bill_id,
            'patient_id': self.patient_id,
            'bill_date': _iso(self.bill_date),
            'amount': float(self.amount),
            'paid': self.paid,
        }
