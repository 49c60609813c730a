# -*- coding: utf-8 -*-
from flask_sqlalchemy import SQLAlchemy

"""
All models and managers share this single db handle so that one request works
against one session. main.configure_app binds it to the Flask app.
"""
db = SQLAlchemy()
