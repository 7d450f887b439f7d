import os
from pathlib import Path
from dotenv import load_dotenv
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(os.path.join(BASE_DIR, '.env'))

SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DEBUG', 'True') == 'True'
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework.authtoken',
    'corsheaders',
    'drf_spectacular',
    'generation',
    'publishing',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'mediaforge.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'mediaforge.wsgi.application'

DB_CONN_MAX_AGE = int(os.getenv('DB_CONN_MAX_AGE', '600'))
DB_SSL_REQUIRE = os.getenv('DB_SSL_REQUIRE', 'False') == 'True'
RUN_TASK_INLINE = os.getenv('RUN_TASK_INLINE', 'False') == 'True'
PGHOST = os.getenv('PGHOST')
PGPORT = os.getenv('PGPORT', '5432')
PGUSER = os.getenv('PGUSER')
PGPASSWORD = os.getenv('PGPASSWORD')
PGDATABASE = os.getenv('PGDATABASE')

if PGHOST and PGUSER and PGPASSWORD and PGDATABASE:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': PGDATABASE,
            'USER': PGUSER,
            'PASSWORD': PGPASSWORD,
            'HOST': PGHOST,
            'PORT': PGPORT,
            'CONN_MAX_AGE': DB_CONN_MAX_AGE,
            'OPTIONS': {
                'sslmode': 'require' if DB_SSL_REQUIRE else 'prefer'
            }
        }
    }
else:
    DATABASES = {
        'default': dj_database_url.parse(
            os.getenv('DATABASE_URL', f'sqlite:///{BASE_DIR / "db.sqlite3"}'),
            conn_max_age=DB_CONN_MAX_AGE,
            ssl_require=DB_SSL_REQUIRE,
        )
    }

REDIS_URL = os.getenv('REDIS_URL')

# One alias per concern so TTLs and eviction never collide.
if REDIS_URL:
    _cache_backend = 'django.core.cache.backends.redis.RedisCache'
    _cache_location = REDIS_URL
else:
    _cache_backend = 'django.core.cache.backends.locmem.LocMemCache'
    _cache_location = None

CACHES = {
    alias: {
        'BACKEND': _cache_backend,
        'LOCATION': _cache_location or f'mediaforge-{alias}',
        'KEY_PREFIX': prefix,
        'TIMEOUT': int(os.getenv('CACHE_DEFAULT_TTL', '3600')),
    }
    for alias, prefix in (('default', 'data'), ('oauth', 'auth'), ('stats', 'stats'), ('analytics', 'analytics'))
}

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.TokenAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'mediaforge.errors.api_exception_handler',
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
}

GENERATION_BACKEND_URL = os.getenv('GENERATION_BACKEND_URL', 'http://localhost:8000/api/v1')
GENERATION_BACKEND_DUMMY = os.getenv('GENERATION_BACKEND_DUMMY', 'False') == 'True'
GENERATION_BACKEND_TIMEOUT = float(os.getenv('GENERATION_BACKEND_TIMEOUT', '600'))
GENERATION_STAGE_TIMEOUT = float(os.getenv('GENERATION_STAGE_TIMEOUT')) if os.getenv('GENERATION_STAGE_TIMEOUT') else None
GENERATION_MAX_RETRIES = int(os.getenv('GENERATION_MAX_RETRIES', '0'))
GENERATION_RETRY_BACKOFF = int(os.getenv('GENERATION_RETRY_BACKOFF', '30'))
GENERATION_TRANSITION_DURATION = float(os.getenv('GENERATION_TRANSITION_DURATION', '1'))
GENERATION_IMAGE_WORKERS = int(os.getenv('GENERATION_IMAGE_WORKERS', '8'))
GENERATION_STREAM_INTERVAL = float(os.getenv('GENERATION_STREAM_INTERVAL', '1'))
GENERATION_STREAM_TIMEOUT = float(os.getenv('GENERATION_STREAM_TIMEOUT', '600'))

GOOGLE_CLIENT_ID = os.getenv('GOOGLE_CLIENT_ID', '')
GOOGLE_CLIENT_SECRET = os.getenv('GOOGLE_CLIENT_SECRET', '')
YOUTUBE_REDIRECT_URL = os.getenv('YOUTUBE_REDIRECT_URL', 'http://localhost:8001/api/youtube/callback')
YOUTUBE_PUBLIC_REDIRECT_URL = os.getenv('YOUTUBE_PUBLIC_REDIRECT_URL')
YOUTUBE_TOKEN_REFRESH_HORIZON = int(os.getenv('YOUTUBE_TOKEN_REFRESH_HORIZON', '300'))
YOUTUBE_STATS_TTL = int(os.getenv('YOUTUBE_STATS_TTL', '300'))
YOUTUBE_ANALYTICS_TTL = int(os.getenv('YOUTUBE_ANALYTICS_TTL', '1800'))

CELERY_BROKER_URL = REDIS_URL or 'redis://localhost:6379/0'
CELERY_RESULT_BACKEND = REDIS_URL or 'redis://localhost:6379/0'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = 'UTC'
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_WORKER_CONCURRENCY = int(os.getenv('GENERATION_WORKER_CONCURRENCY', '2'))

CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8080",
]

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'root': {'handlers': ['console'], 'level': 'INFO'},
    'loggers': {
        'generation': {'handlers': ['console'], 'level': os.getenv('LOG_LEVEL', 'INFO'), 'propagate': False},
        'publishing': {'handlers': ['console'], 'level': os.getenv('LOG_LEVEL', 'INFO'), 'propagate': False},
    },
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Mediaforge API',
    'DESCRIPTION': 'AI-driven script, image, audio and video generation with background jobs and YouTube publishing.',
    'VERSION': '1.0.0',
    'SERVERS': [{'url': 'http://127.0.0.1:8001', 'description': 'Local'}],
    'COMPONENT_SPLIT_REQUEST': True,
    'SERVE_INCLUDE_SCHEMA': False,
    'TAGS': [
        {'name': 'Assets', 'description': 'Scripts, audios, images and videos'},
        {'name': 'Flow', 'description': 'Video generation jobs'},
        {'name': 'Publishing', 'description': 'YouTube authorization and publishing'},
    ],
    'SWAGGER_UI_SETTINGS': {
        'deepLinking': True,
        'persistAuthorization': True,
        'displayOperationId': True,
        'filter': True,
        'docExpansion': 'none',
    },
}
