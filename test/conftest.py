import pytest
from cozycabin import create_app, mongo
from cozycabin.auth.models import Profile
from cozycabin.models import UserRole
from cozycabin.utils import utcnow
from unittest.mock import patch
import logging
import mongomock

# Desactivar la propagación de logs para evitar duplicados en la consola de pytest
logging.getLogger("werkzeug").setLevel(logging.ERROR)
logging.getLogger("flask_limiter").setLevel(logging.ERROR)

PASSWORD = "ThisIsA-Valid-Password123!"


@pytest.fixture(scope="function")
def app(tmp_path):
    """Crea y configura una instancia de la aplicación Flask para cada test."""
    with patch('flask_pymongo.MongoClient', mongomock.MongoClient):
        app = create_app('testing')
        app.config['ATTACHMENTS_FOLDER'] = str(tmp_path / "storage")
        yield app


@pytest.fixture(scope="function")
def client(app):
    """Cliente de prueba simple para la aplicación Flask."""
    return app.test_client()


@pytest.fixture(scope="function")
def db(app):
    """
    Acceso a la BD, vacía al empezar cada test.
    No deja un contexto de aplicación activo: las peticiones del cliente
    de prueba deben crear el suyo (Flask-Login guarda el usuario en 'g').
    """
    with app.app_context():
        mongo.db.client.drop_database(mongo.db.name)
    return mongo


@pytest.fixture(scope="function")
def app_ctx(app):
    """Contexto de aplicación para los tests que usan stores y repositorios directamente."""
    with app.app_context():
        yield app


def create_profile(db, email, role, full_name, is_active=True):
    now = utcnow()
    profile = Profile(email=email, full_name=full_name, role=role, password=PASSWORD,
                      is_active=is_active, created_at=now, updated_at=now)
    result = db.db.profiles.insert_one(profile.to_document())
    profile.id = str(result.inserted_id)
    return profile


@pytest.fixture
def make_profile(db):
    """Crea perfiles adicionales con la contraseña de prueba."""
    def _make_profile(email, role, full_name, is_active=True):
        return create_profile(db, email, role, full_name, is_active=is_active)
    return _make_profile


@pytest.fixture(scope="function")
def customer(db):
    """Crea un perfil de prueba (rol: customer)."""
    return create_profile(db, "customer@example.com", UserRole.CUSTOMER, "Carla Cliente")


@pytest.fixture(scope="function")
def other_customer(db):
    return create_profile(db, "other.customer@example.com", UserRole.CUSTOMER, "Otro Cliente")


@pytest.fixture(scope="function")
def agent(db):
    """Crea un perfil de prueba (rol: agent)."""
    return create_profile(db, "agent@example.com", UserRole.AGENT, "Andrés Agente")


@pytest.fixture(scope="function")
def other_agent(db):
    return create_profile(db, "other.agent@example.com", UserRole.AGENT, "Otra Agente")


@pytest.fixture(scope="function")
def admin(db):
    """Crea un perfil administrador de prueba."""
    return create_profile(db, "admin@example.com", UserRole.ADMIN, "Ana Admin")


@pytest.fixture
def auth_headers(app):
    """Cabeceras con el token Bearer de un perfil."""
    def _auth_headers(profile):
        with app.app_context():
            return {"Authorization": f"Bearer {profile.get_access_token()}"}
    return _auth_headers


@pytest.fixture
def login():
    """Función de ayuda para iniciar sesión con cookie en los tests."""
    def _login(client, email, password=PASSWORD):
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()
    return _login


@pytest.fixture
def ticket_store_for(app_ctx):
    """Construye el TicketStore de un perfil sobre la BD de pruebas."""
    from cozycabin import stores

    def _ticket_store_for(profile):
        return stores.get_ticket_store(profile)
    return _ticket_store_for
