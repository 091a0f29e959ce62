import os


class Config:
    """Base configuration"""

    # Backup source and destination
    SOURCE_PATH = os.environ.get('SOURCE_PATH')
    BUCKET_NAME = os.environ.get('BUCKET_NAME')
    CREDENTIALS_PATH = os.environ.get('CREDENTIALS_PATH') or '/data/credentials.json'
    DESTINATION_FOLDER = os.environ.get('DESTINATION_FOLDER')
    S3_ENDPOINT_URL = os.environ.get('S3_ENDPOINT_URL')

    # Staging and logs
    STAGING_DIR = os.environ.get('STAGING_DIR') or '/data/staging'
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Archiving and retention
    CHUNK_SIZE = int(os.environ.get('CHUNK_SIZE', 50))
    RETENTION_DAYS = int(os.environ.get('RETENTION_DAYS', 7))

    # Upload
    UPLOAD_WORKERS = int(os.environ.get('UPLOAD_WORKERS', 4))
    UPLOAD_TIMEOUT = int(os.environ.get('UPLOAD_TIMEOUT', 300))  # seconds per segment
    UPLOAD_RETRIES = int(os.environ.get('UPLOAD_RETRIES', 0))
    UPLOAD_RETRY_DELAY = int(os.environ.get('UPLOAD_RETRY_DELAY', 5))

    # Scheduler
    BACKUP_SCHEDULE = os.environ.get('BACKUP_SCHEDULE', '0 2 * * *')  # empty disables scheduled runs
    RETENTION_SCHEDULE_HOUR = int(os.environ.get('RETENTION_SCHEDULE_HOUR', 3))
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    STAGING_DIR = os.path.join(DATA_DIR, 'staging')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')
    CREDENTIALS_PATH = os.environ.get('CREDENTIALS_PATH') or os.path.join(DATA_DIR, 'credentials.json')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
