import logging

import requests

from cozycabin.admin.forms import ConsoleMessageForm
from cozycabin.exceptions import AgentRequestError
from cozycabin.models import MessageRole
from cozycabin.stores.base import BaseStore
from cozycabin.utils import utcnow

logger = logging.getLogger(__name__)

SESSION_KEY = "admin_console_messages"


class AdminChatStore(BaseStore):
    """
    Conversación de la consola de administración con el asistente de IA.
    El historial se guarda en la sesión (o en cualquier dict que se pase).
    """

    def __init__(self, user, session, agent_url, timeout=60):
        super().__init__()
        self.user = user
        self.session = session
        self.agent_url = agent_url
        self.timeout = timeout

    @property
    def messages(self):
        return list(self.session.get(SESSION_KEY, []))

    @property
    def is_processing(self):
        return self.loading

    def _save(self, messages):
        self.session[SESSION_KEY] = messages

    def add_message(self, role, content):
        message = {"role": role, "content": content, "timestamp": utcnow().isoformat()}
        self._save(self.messages + [message])
        return message

    def clear_messages(self):
        self._save([])
        self._reset_errors()

    def send_message(self, content):
        """
        Añade el turno del usuario y pide la respuesta al asistente. Si la
        petición falla, el turno del usuario se conserva y se informa en 'error'.
        """
        with self.action("consultar al asistente"):
            form = self.validate(ConsoleMessageForm.from_payload({"content": content}))
            text = form.content.data.strip()
            prior = [{"role": m["role"], "content": m["content"]} for m in self.messages]
            self.add_message(MessageRole.USER, text)

            reply = self._request_reply(prior, text)
            return self.add_message(MessageRole.ASSISTANT, reply)
        return None

    def _request_reply(self, prior, text):
        try:
            response = requests.post(
                self.agent_url,
                json={"messages": prior, "newUserMessage": text},
                headers={"Authorization": f"Bearer {self.user.get_access_token()}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AgentRequestError(original_exception=e)

        if not response.ok:
            try:
                message = response.json().get("error")
            except ValueError:
                message = None
            logger.warning(f"El asistente respondió {response.status_code}: {message}")
            raise AgentRequestError(message or None)

        try:
            data = response.json()
        except ValueError as e:
            raise AgentRequestError("Respuesta inválida del asistente.", original_exception=e)
        if not isinstance(data, dict) or not isinstance(data.get("reply"), str):
            raise AgentRequestError("Respuesta inválida del asistente.")
        if data.get("error") is not None and not isinstance(data["error"], str):
            raise AgentRequestError("Respuesta inválida del asistente.")
        return data["reply"]
