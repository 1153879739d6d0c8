"""
Telehealth services.

Each subpackage is one independently deployable service:

- registration: patients, publishes patient.registered
- scheduling: eligibility windows and appointment booking, publishes appointment.booked
- delivery: appointment mappings and virtual sessions, publishes session.started
"""
