# betbot/config.py
import os
from datetime import timedelta
from dotenv import load_dotenv

# Load environment variables from .env file
basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '..', '.env')) # Look for .env file one level up

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, '..', 'betbot.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or os.environ.get('SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    # Lets flask_jwt_extended's error handlers answer for Flask-RESTful resources
    PROPAGATE_EXCEPTIONS = True
    # Shared with the Discord gateway process; exchanged for per-user tokens
    BOT_SHARED_SECRET = os.environ.get('BOT_SHARED_SECRET')

    # 'simple': fixed 100 point stake, one bet per match.
    # 'extended': user-chosen stake, additional stakes on the same selection.
    BETTING_MODE = os.environ.get('BETTING_MODE', 'simple')
    DEFAULT_STAKE = 100
    SIMPLE_STARTING_POINTS = 100
    EXTENDED_STARTING_POINTS = 250

    MAX_ACTIVE_MATCHES_PER_LEAGUE = 10
    LEADERBOARD_PAGE_SIZE = 20

class DevelopmentConfig(Config):
    DEBUG = True

class ProductionConfig(Config):
    DEBUG = False
    # Heroku provides DATABASE_URL but it might use postgres:// instead of postgresql://
    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = database_url

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'testing-secret'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-of-sufficient-length'
    BOT_SHARED_SECRET = 'testing-bot-secret'
    BETTING_MODE = 'simple'

# Dictionary to access configs by name
config_by_name = dict(
    development=DevelopmentConfig,
    prod=ProductionConfig,
    production=ProductionConfig,  # Heroku might use "production"
    testing=TestingConfig,
)
