import logging
import os
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_mail import Mail
from sqlalchemy import inspect
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ----- Extensiones (sin app) -----
db = SQLAlchemy()
bcrypt = Bcrypt()
mail = Mail()


def _env_bool(nombre: str, default: str) -> bool:
    return os.getenv(nombre, default).strip().lower() in ("1", "true", "yes", "si")


def _normalize_db_url(url: str) -> str:
    """Convierte 'postgres://' -> 'postgresql+psycopg2://' (Render/Supabase)."""
    if not url:
        return url
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def _compute_sqlalchemy_uri(app: Flask) -> str:
    """
    Si hay DATABASE_URL -> úsala (PostgreSQL recomendado en prod).
    Si no, usa SQLite en ./instance/citas.db (dev/pruebas).
    """
    env_url = os.getenv("DATABASE_URL", "").strip()
    if env_url:
        return _normalize_db_url(env_url)

    Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    sqlite_path = Path(app.instance_path) / "citas.db"
    return f"sqlite:///{sqlite_path.as_posix()}"


def _configure(app: Flask, overrides=None):
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "clave-segura-agendamiento")

    # Base de datos
    app.config["SQLALCHEMY_DATABASE_URI"] = _compute_sqlalchemy_uri(app)
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Tokens de sesión (sin default: su ausencia es un error de despliegue)
    app.config["JWT_SECRET"] = os.getenv("JWT_SECRET")
    app.config["JWT_EXPIRES_HOURS"] = float(os.getenv("JWT_EXPIRES_HOURS", "8"))

    # Mail (solo por .env; sin valores duros)
    app.config["MAIL_SERVER"] = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    app.config["MAIL_PORT"] = int(os.getenv("MAIL_PORT", "587"))
    app.config["MAIL_USE_TLS"] = os.getenv("MAIL_USE_TLS", "True") == "True"
    app.config["MAIL_USERNAME"] = os.getenv("MAIL_USERNAME")
    app.config["MAIL_PASSWORD"] = os.getenv("MAIL_PASSWORD")
    app.config["MAIL_DEFAULT_SENDER"] = os.getenv("MAIL_DEFAULT_SENDER") or app.config.get("MAIL_USERNAME")
    # Aviso al administrador de cada cita nueva; vacío = desactivado
    app.config["ADMIN_NOTIFY_EMAIL"] = os.getenv("ADMIN_NOTIFY_EMAIL")

    # SMS vía Twilio
    app.config["SMS_ENABLED"] = _env_bool("SMS_ENABLED", "false")
    app.config["TWILIO_ACCOUNT_SID"] = os.getenv("TWILIO_ACCOUNT_SID")
    app.config["TWILIO_AUTH_TOKEN"] = os.getenv("TWILIO_AUTH_TOKEN")
    app.config["TWILIO_MESSAGING_SERVICE_SID"] = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

    app.config["NOTIFICACIONES_ASYNC"] = _env_bool("NOTIFICACIONES_ASYNC", "true")
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").upper()

    if overrides:
        app.config.update(overrides)


def _configure_logging(app: Flask):
    level = getattr(logging, app.config["LOG_LEVEL"], logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("agendamiento").setLevel(level)


def _create_tables_if_sqlite(app: Flask):
    """Crea tablas automáticamente SOLO cuando usamos SQLite (dev)."""
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:"):
        db.create_all()


def _seed_admin(app: Flask):
    """
    Crea el usuario ADMIN inicial si:
    - Existe la tabla 'usuarios'
    - Se definió ADMIN_EMAIL y ADMIN_PASSWORD
    - Y todavía no hay un usuario con ese email (idempotente)
    """
    from agendamiento.models import Rol, Usuario

    if not inspect(db.engine).has_table("usuarios"):
        return

    admin_email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
    admin_password = os.getenv("ADMIN_PASSWORD")
    if not (admin_email and admin_password):
        return

    if db.session.query(Usuario).filter_by(email=admin_email).first():
        return

    db.session.add(Usuario(
        nombre=os.getenv("ADMIN_NOMBRE", "Administrador"),
        email=admin_email,
        password_hash=bcrypt.generate_password_hash(admin_password).decode(),
        rol=Rol.ADMIN,
    ))
    db.session.commit()
    logger.info("Usuario administrador inicial creado: %s", admin_email)


def create_app(config=None) -> Flask:
    # Carga .env (solo dev/local)
    load_dotenv()

    app = Flask(__name__)
    _configure(app, config)
    _configure_logging(app)

    # ----- Inicializa extensiones con la app -----
    db.init_app(app)
    bcrypt.init_app(app)
    mail.init_app(app)

    app.extensions["notificaciones"] = ThreadPoolExecutor(
        max_workers=4, thread_name_prefix="notificaciones"
    )

    # Importa modelos y rutas ANTES de crear tablas / seed
    from agendamiento import models  # noqa: F401
    from agendamiento.errors import register_error_handlers
    from agendamiento.auth.routes import auth_bp
    from agendamiento.routes import api_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    with app.app_context():
        _create_tables_if_sqlite(app)
        _seed_admin(app)

    return app
