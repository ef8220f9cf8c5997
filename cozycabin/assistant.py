"""
Asistente de IA de la consola de administración.

Las peticiones con una intención reconocible por palabras clave se responden
con una consulta directa a la base de datos; el resto se envía al modelo de
lenguaje junto con la conversación previa.
"""

import logging

import openai
from openai import OpenAI
from flask import current_app

from cozycabin.exceptions import AgentRequestError, BaseAppException
from cozycabin.models import MessageRole, TicketStatus
from cozycabin.utils import retry, with_ai_logging

logger = logging.getLogger(__name__)

INTENT_UNASSIGNED = "unassigned_tickets"
INTENT_STATUS_SUMMARY = "status_summary"

INTENT_KEYWORDS = {
    INTENT_UNASSIGNED: ("unassigned tickets", "tickets sin asignar"),
    INTENT_STATUS_SUMMARY: ("ticket stats", "status summary", "estadísticas de tickets"),
}

UNASSIGNED_SUMMARY_LIMIT = 20

SYSTEM_PROMPT = """You are an AI admin assistant for a ticketing system. Your role is to help manage and organize support tickets.

Guidelines:
- Always be professional and clear in your responses
- When dealing with tickets, include relevant IDs and details
- If you need to update a ticket, confirm the action first
- If you're unsure about a request, ask for clarification

Priorities are: urgent, high, normal, medium, low
Statuses are: open, in_progress, pending, on_hold, solved, closed"""


def detect_intent(message):
    text = message.lower()
    for intent, keywords in INTENT_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return intent
    return None


def summarize_unassigned(tickets):
    if not tickets:
        return "There are no unassigned tickets."

    lines = [f"There are {len(tickets)} unassigned tickets:"]
    for ticket in tickets:
        description = ticket.get("description") or ""
        if len(description) > 150:
            description = description[:150] + "..."
        lines.append(
            f"- [{ticket['priority']}] {ticket['subject']} (ID: {ticket['id']}, status: {ticket['status']})"
            + (f"\n  {description}" if description else "")
        )
    return "\n".join(lines)


def summarize_status_counts(counts):
    total = sum(counts.values())
    lines = [f"Ticket status summary ({total} tickets):"]
    for status in TicketStatus.ALL:
        lines.append(f"- {status}: {counts.get(status, 0)}")
    return "\n".join(lines)


def get_openai_client():
    return OpenAI(
        api_key=current_app.config["OPENAI_API_KEY"],
        max_retries=current_app.config["OPENAI_MAX_RETRIES"],
    )


@with_ai_logging("admin_agent_chat")
@retry(max_attempts=2, delay=1.0, exceptions=(openai.APIConnectionError,))
def complete_chat(messages):
    response = get_openai_client().chat.completions.create(
        model=current_app.config["OPENAI_MODEL"],
        temperature=current_app.config["OPENAI_TEMPERATURE"],
        messages=messages,
    )
    return response.choices[0].message.content or ""


def handle_admin_agent_request(ticket_repository, conversation, new_user_message):
    """
    Devuelve {'reply': str}. Lanza AgentRequestError si la respuesta no
    se puede obtener.
    """
    intent = detect_intent(new_user_message)
    try:
        if intent == INTENT_UNASSIGNED:
            logger.info("Intención detectada: tickets sin asignar")
            return {"reply": summarize_unassigned(ticket_repository.find_unassigned(limit=UNASSIGNED_SUMMARY_LIMIT))}
        if intent == INTENT_STATUS_SUMMARY:
            logger.info("Intención detectada: resumen por estado")
            return {"reply": summarize_status_counts(ticket_repository.count_by_status())}
    except BaseAppException as e:
        raise AgentRequestError(f"Error querying tickets: {e.message}", original_exception=e)

    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    messages.extend(
        {"role": m["role"], "content": m["content"]}
        for m in conversation
        if m.get("role") in MessageRole.ALL
    )
    messages.append({"role": MessageRole.USER, "content": new_user_message})

    try:
        reply = complete_chat(messages)
    except openai.OpenAIError as e:
        logger.error(f"Error del modelo de lenguaje: {e}", exc_info=True)
        raise AgentRequestError(original_exception=e)
    return {"reply": reply}
