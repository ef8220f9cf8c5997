# cozycabin/stores/__init__.py
#
# Los stores se construyen por petición con el usuario actual y los
# repositorios sobre la base de datos de la aplicación.

from flask import current_app, session

from cozycabin import mongo
from cozycabin.repositories import (
    MongoTicketRepository, MongoCommentRepository, MongoAttachmentRepository,
    MongoInviteRepository, MongoProfileRepository, MongoStatsRepository,
)
from cozycabin.storage import get_storage
from cozycabin.stores.admin_store import AdminChatStore
from cozycabin.stores.auth_store import AuthStore
from cozycabin.stores.invite_store import InviteStore
from cozycabin.stores.ticket_store import TicketStore


def get_ticket_store(user):
    return TicketStore(
        user,
        MongoTicketRepository(mongo.db),
        MongoCommentRepository(mongo.db),
        MongoAttachmentRepository(mongo.db),
        MongoProfileRepository(mongo.db),
        MongoStatsRepository(mongo.db),
        get_storage(),
        list_limit=current_app.config["TICKET_LIST_LIMIT"],
        max_attachment_size=current_app.config["MAX_ATTACHMENT_SIZE"],
    )


def get_auth_store(user=None):
    return AuthStore(MongoProfileRepository(mongo.db), MongoInviteRepository(mongo.db), user=user)


def get_invite_store(user):
    return InviteStore(user, MongoInviteRepository(mongo.db))


def get_admin_chat_store(user):
    agent_url = current_app.config.get("ADMIN_AGENT_URL") or f"{current_app.config['SITE_URL']}/functions/v1/adminAgent"
    return AdminChatStore(
        user,
        session,
        agent_url,
        timeout=current_app.config["ADMIN_AGENT_TIMEOUT"],
    )
