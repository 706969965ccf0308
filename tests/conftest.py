# tests/conftest.py
"""
Shared fixtures: an app on in-memory SQLite with one account per role
"""

import io

import pandas as pd
import pytest

from app import create_app
from config import TestingConfig
from models import db, User, Employee
from utils.tokens import generate_token

PASSWORD = 'secret123'


@pytest.fixture
def app():
    app = create_app(TestingConfig)

    with app.app_context():
        accounts = [
            User(email='root@example.com', username='root', name='Root', role='super-admin'),
            User(email='admin@example.com', username='admin', name='Admin', role='admin'),
            User(email='user@example.com', username='projuser', name='Project User', role='user'),
        ]
        for account in accounts:
            account.set_password(PASSWORD)
        employee = Employee(emp_id='EMP001', name='John Smith', site='Head Office',
                            site_type='HEAD_OFFICE', role='Engineer', department='Engineering')
        employee.set_password(PASSWORD)
        db.session.add_all(accounts + [employee])
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def headers(app):
    """Authorization headers keyed by super, admin, user, employee"""
    with app.app_context():
        accounts = {
            'super': User.query.filter_by(role='super-admin').first(),
            'admin': User.query.filter_by(role='admin').first(),
            'user': User.query.filter_by(role='user').first(),
            'employee': Employee.query.filter_by(emp_id='EMP001').first(),
        }
        return {key: {'Authorization': f'Bearer {generate_token(account)}'}
                for key, account in accounts.items()}


@pytest.fixture
def ids(app):
    with app.app_context():
        return {
            'super': User.query.filter_by(role='super-admin').first().id,
            'admin': User.query.filter_by(role='admin').first().id,
            'user': User.query.filter_by(role='user').first().id,
            'employee': Employee.query.filter_by(emp_id='EMP001').first().id,
        }


def make_xlsx(records, columns=None):
    """xlsx bytes for a list of row dicts"""
    buffer = io.BytesIO()
    pd.DataFrame(records, columns=columns).to_excel(buffer, index=False)
    buffer.seek(0)
    return buffer


def upload_data(records, filename='upload.xlsx', field='file', columns=None, **form):
    data = {field: (make_xlsx(records, columns), filename)}
    data.update(form)
    return data
