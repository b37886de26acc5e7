import enum
from datetime import datetime

from sqlalchemy import text

from agendamiento import db


class Rol(str, enum.Enum):
    ADMIN = "ADMIN"
    OPERADOR = "OPERADOR"


class Canal(str, enum.Enum):
    API = "API"
    SMS = "SMS"
    WEB = "WEB"


class EstadoCita(str, enum.Enum):
    PENDIENTE = "PENDIENTE"
    CONFIRMADO = "CONFIRMADO"
    CANCELADO = "CANCELADO"


def _iso(valor):
    return valor.isoformat() if valor is not None else None


# Tabla: usuarios
class Usuario(db.Model):
    __tablename__ = 'usuarios'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(100), nullable=False)
    # guardado siempre normalizado (trim + minúsculas)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    rol = db.Column(db.Enum(Rol, name="rol_usuario"), nullable=False, default=Rol.OPERADOR)
    creado_en = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        """Proyección pública: nunca incluye el hash de la contraseña."""
        return {
            "id_usuario": self.id,
            "nombre": self.nombre,
            "email": self.email,
            "rol": self.rol.value,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
        }


# Tabla: operadores
class Operador(db.Model):
    __tablename__ = 'operadores'

    id = db.Column(db.Integer, primary_key=True)
    id_usuario = db.Column(db.Integer, db.ForeignKey('usuarios.id'), unique=True, nullable=False)
    activo = db.Column(db.Boolean, nullable=False, default=True)
    creado_en = db.Column(db.DateTime, default=datetime.utcnow)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    usuario = db.relationship('Usuario', backref=db.backref('operador', uselist=False), lazy='joined')

    def to_dict(self):
        return {
            "id_operador": self.id,
            "id_usuario": self.id_usuario,
            "activo": self.activo,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
            "usuario": self.usuario.to_dict(),
        }


# Tabla: pacientes
class Paciente(db.Model):
    __tablename__ = 'pacientes'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    telefono = db.Column(db.String(20), nullable=False, index=True)
    fecha_nacimiento = db.Column(db.Date)
    documento = db.Column(db.String(50), unique=True)
    genero = db.Column(db.String(20))
    direccion = db.Column(db.String(255))
    ciudad = db.Column(db.String(100))
    creado_en = db.Column(db.DateTime, default=datetime.utcnow)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    citas = db.relationship('Cita', backref='paciente', lazy=True)

    def to_dict(self):
        return {
            "id_paciente": self.id,
            "nombre": self.nombre,
            "email": self.email,
            "telefono": self.telefono,
            "fecha_nacimiento": _iso(self.fecha_nacimiento),
            "documento": self.documento,
            "genero": self.genero,
            "direccion": self.direccion,
            "ciudad": self.ciudad,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
        }


# Tabla: especialidades
class Especialidad(db.Model):
    __tablename__ = 'especialidades'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(100), unique=True, nullable=False)
    descripcion = db.Column(db.Text)
    creado_en = db.Column(db.DateTime, default=datetime.utcnow)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    citas = db.relationship('Cita', backref='especialidad', lazy=True)

    def to_dict(self):
        return {
            "id_especialidad": self.id,
            "nombre": self.nombre,
            "descripcion": self.descripcion,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
        }


# Tabla: sedes
class Sede(db.Model):
    __tablename__ = 'sedes'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(100), unique=True, nullable=False)
    direccion = db.Column(db.String(255))
    telefono = db.Column(db.String(20))
    creado_en = db.Column(db.DateTime, default=datetime.utcnow)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    citas = db.relationship('Cita', backref='sede', lazy=True)

    def to_dict(self):
        return {
            "id_sede": self.id,
            "nombre": self.nombre,
            "direccion": self.direccion,
            "telefono": self.telefono,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
        }


# Tabla: citas
class Cita(db.Model):
    __tablename__ = 'citas'
    __table_args__ = (
        # una sola cita activa por franja (especialidad, sede, fecha, hora)
        db.Index(
            'uq_citas_franja_activa',
            'id_especialidad', 'id_sede', 'fecha', 'hora',
            unique=True,
            sqlite_where=text("estado != 'CANCELADO'"),
            postgresql_where=text("estado != 'CANCELADO'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    id_paciente = db.Column(db.Integer, db.ForeignKey('pacientes.id'), nullable=False, index=True)
    id_especialidad = db.Column(db.Integer, db.ForeignKey('especialidades.id'), nullable=False)
    id_sede = db.Column(db.Integer, db.ForeignKey('sedes.id'), nullable=False)
    fecha = db.Column(db.Date, nullable=False)
    hora = db.Column(db.Time, nullable=False)
    canal = db.Column(db.Enum(Canal, name="canal_cita"), nullable=False)
    estado = db.Column(
        db.Enum(EstadoCita, name="estado_cita"),
        nullable=False,
        default=EstadoCita.PENDIENTE,
        index=True,
    )
    creado_en = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    actualizado_en = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    confirmado_en = db.Column(db.DateTime)
    cancelado_en = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id_cita": self.id,
            "id_paciente": self.id_paciente,
            "id_especialidad": self.id_especialidad,
            "id_sede": self.id_sede,
            "fecha": _iso(self.fecha),
            "hora": _iso(self.hora),
            "canal": self.canal.value,
            "estado": self.estado.value,
            "created_at": _iso(self.creado_en),
            "updated_at": _iso(self.actualizado_en),
            "confirmed_at": _iso(self.confirmado_en),
            "cancelled_at": _iso(self.cancelado_en),
        }


# Tabla: idempotency_keys
class IdempotencyKey(db.Model):
    __tablename__ = 'idempotency_keys'

    key = db.Column(db.String(255), primary_key=True)
    entidad = db.Column(db.String(50), nullable=False)
    recurso_id = db.Column(db.Integer, nullable=False)
    creado_en = db.Column(db.DateTime, default=datetime.utcnow)
