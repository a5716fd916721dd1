# pollbuddy/__init__.py

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv
import logging
import os

load_dotenv()

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Bot API URLs embed the token
logging.getLogger('urllib3').setLevel(logging.WARNING)

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'change-me-in-production')

app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///election.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# Telegram transport
app.config['BOT_TOKEN'] = os.environ.get('BOT_TOKEN', '')
app.config['TELEGRAM_API_URL'] = os.environ.get('TELEGRAM_API_URL', 'https://api.telegram.org')
app.config['WEBHOOK_SECRET'] = os.environ.get('WEBHOOK_SECRET', '')
app.config['ADMIN_TELEGRAM_ID'] = os.environ.get('ADMIN_TELEGRAM_ID', '')

# Election
app.config['ELECTION_ID'] = os.environ.get('ELECTION_ID', 'nacos_2024')
app.config['ELECTION_PRIVATE_KEY_PATH'] = os.environ.get('ELECTION_PRIVATE_KEY_PATH')  # unset: per-process key
app.config['OTP_TTL_MINUTES'] = int(os.environ.get('OTP_TTL_MINUTES', '5'))
app.config['EMAIL_DOMAIN'] = os.environ.get('EMAIL_DOMAIN', '@stu.cu.edu.ng')
app.config['CAMPAIGN_HOURS'] = int(os.environ.get('CAMPAIGN_HOURS', '24'))
app.config['CAMPAIGN_CHAT_IDS'] = [c.strip() for c in os.environ.get('CAMPAIGN_CHAT_IDS', '').split(',') if c.strip()]

# Outbound mail
app.config['SMTP_HOST'] = os.environ.get('SMTP_HOST', 'smtp.gmail.com')
app.config['SMTP_PORT'] = int(os.environ.get('SMTP_PORT', '587'))
app.config['SMTP_USER'] = os.environ.get('SMTP_USER', '')
app.config['SMTP_PASS'] = os.environ.get('SMTP_PASS', '')
app.config['SMTP_USE_TLS'] = os.environ.get('SMTP_USE_TLS', 'true').lower() == 'true'
app.config['SMTP_FROM'] = os.environ.get('SMTP_FROM', app.config['SMTP_USER'])

# Operations
app.config['AUDIT_LOG_DIR'] = os.environ.get('AUDIT_LOG_DIR', 'logs')
app.config['AUDIT_SIGNING_KEY_PATH'] = os.environ.get('AUDIT_SIGNING_KEY_PATH')  # unset: per-process key
app.config['NTP_SERVERS'] = [s.strip() for s in os.environ.get('NTP_SERVERS', 'pool.ntp.org,time.google.com').split(',') if s.strip()]
app.config['MAX_TIME_OFFSET_S'] = float(os.environ.get('MAX_TIME_OFFSET_S', '0.5'))
app.config['MIN_FREE_DISK_GB'] = float(os.environ.get('MIN_FREE_DISK_GB', '1'))

# Fix proxy headers when running behind a TLS terminator
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

# Initialize extensions
db = SQLAlchemy(app)  # Database ORM
migrate = Migrate(app, db, directory=os.path.join(os.path.dirname(__file__), 'database', 'migrations'))  # DB migrations

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["10000/hour"],
    storage_uri=os.environ.get('RATELIMIT_STORAGE_URI', 'memory://'),
)
limiter.init_app(app)


# Ensure model modules are imported so SQLAlchemy metadata is populated
# before `flask db migrate` inspects it.
from pollbuddy.database import models  # noqa: F401

from pollbuddy import routes  # noqa: E402,F401
from pollbuddy import cli  # noqa: E402,F401
