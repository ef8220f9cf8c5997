# cozycabin/commands.py

from flask.cli import with_appcontext
from cozycabin import mongo
from cozycabin.auth.models import Profile
from cozycabin.models import UserRole
from cozycabin.utils import utcnow
import click
import pymongo
import secrets
import string


def create_indexes(db):
    """Índices necesarios para las consultas de tickets, comentarios e invitaciones."""
    db.profiles.create_index("email", unique=True)
    db.invites.create_index("token", unique=True)
    db.tickets.create_index([("created_at", pymongo.DESCENDING), ("_id", pymongo.DESCENDING)])
    db.tickets.create_index("customer_id")
    db.tickets.create_index([("assigned_to", pymongo.ASCENDING), ("status", pymongo.ASCENDING)])
    db.ticket_comments.create_index([("ticket_id", pymongo.ASCENDING), ("created_at", pymongo.ASCENDING)])
    db.ticket_attachments.create_index("ticket_id")
    db.ai_logs.create_index([("feature_name", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])


def generate_password(length=12):
    # Garantiza mayúscula, minúscula y dígito para cumplir la política de contraseñas
    alphabet = string.ascii_letters + string.digits + string.punctuation
    while True:
        password = ''.join(secrets.choice(alphabet) for i in range(length))
        if (any(c.islower() for c in password)
                and any(c.isupper() for c in password)
                and any(c.isdigit() for c in password)):
            return password


@click.command("init-db-data")
@with_appcontext
def init_db_data_command():
    """Crea los índices y los perfiles de ejemplo (administrador, agente y cliente)."""
    print("Iniciando carga de datos iniciales para MongoDB...")

    try:
        print("Creando índices...")
        create_indexes(mongo.db)
        print("Índices creados.")

        profiles_to_create = [
            {'email': 'admin@example.com', 'full_name': 'Admin Demo', 'role': UserRole.ADMIN},
            {'email': 'agent@example.com', 'full_name': 'Agente Demo', 'role': UserRole.AGENT},
            {'email': 'customer@example.com', 'full_name': 'Cliente Demo', 'role': UserRole.CUSTOMER},
        ]

        for profile_data in profiles_to_create:
            email = profile_data['email']
            if not mongo.db.profiles.find_one({"email": email}):
                print(f"Creando perfil '{email}'...")
                password = generate_password()
                now = utcnow()
                profile = Profile(password=password, created_at=now, updated_at=now, **profile_data)
                mongo.db.profiles.insert_one(profile.to_document())

                print(f"Perfil '{email}' creado con éxito.")
                print(f"  -> Contraseña para '{email}': {password}")
            else:
                print(f"El perfil '{email}' ya existe.")

        print("\nCarga de datos iniciales finalizada con éxito.")

    except pymongo.errors.PyMongoError as e:
        print(f"\nERROR: Ocurrió un error de base de datos durante la inicialización: {e}")
