# backend/wsgi.py
from memimo_crm import create_app

app = create_app()
