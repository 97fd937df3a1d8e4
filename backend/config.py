import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Shared credential for admin sockets; can be changed at runtime by an admin
    ADMIN_SECRET = os.environ.get('ADMIN_SECRET') or 'change-me'
    # Auto-call defaults (ms)
    CALL_INTERVAL_MS = int(os.environ.get('CALL_INTERVAL_MS', '7000'))
    AUTO_CALL_ENABLED = os.environ.get('AUTO_CALL_ENABLED', 'false').lower() == 'true'
    # Liveness reaper (seconds)
    REAPER_INTERVAL_SEC = int(os.environ.get('REAPER_INTERVAL_SEC', '60'))
    INACTIVITY_TIMEOUT_SEC = int(os.environ.get('INACTIVITY_TIMEOUT_SEC', '300'))
    CORS_ORIGINS = os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
    ).split(',')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '8000'))
