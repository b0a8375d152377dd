# backend/conversation.py
"""
Conversation state machine for filling fields one message at a time

filling -> review -> changing -> review -> complete

Fields are asked strictly in parser order. Values are only overwritten
through an explicit "change <field>" cycle during review.
"""

import logging
import re
import uuid
from typing import Iterator, List, Optional

from document_handler import normalize_placeholder
from errors import AIServiceError, SessionNotFoundError
from llm_handler import LLMService
from models import (
    ConversationTurn,
    DocumentField,
    FieldType,
    Intent,
    Message,
    Session,
    SessionStatus,
)
from session_store import SessionStore
from validator import ConversationalValidator, DocumentValidator

logger = logging.getLogger(__name__)

NAVIGATION_COMMAND = re.compile(r"\b(skip|jump|go to|move to|let['’]?s move)\b", re.IGNORECASE)
CHANGE_COMMAND = re.compile(r"\bchange\s+(?P<name>.+)$", re.IGNORECASE | re.DOTALL)
CONFIRM_COMMAND = re.compile(r"\b(confirm|done|finalize)\b", re.IGNORECASE)
REVIEW_COMMAND = re.compile(r"\b(review|check)\b", re.IGNORECASE)

COMMAND_MENU = (
    "• Type **'confirm'** or **'done'** to finalize and download your document\n"
    "• Type **'change [field name]'** to update any field (e.g., 'change company name')\n"
    "• Type **'review'** to check for any potential issues"
)

INTENT_PROMPT = """You are an intelligent assistant analyzing user intent in a document filling conversation.

Current context:
- We're asking for: "{field}"
- User said: "{message}"

Analyze if the user is:
1. "answer" - Providing the requested information
2. "question" - Asking a question (e.g., "can I download?", "what is this?", "why do you need this?")
3. "help" - Asking for help or clarification
4. "navigate" - Wants to skip/jump to a different field (e.g., "let's do email first", "skip to address")
5. "unclear" - Message is unclear or off-topic

Respond with ONLY ONE WORD: answer, question, help, navigate, or unclear"""

QUESTION_PROMPT = """You are a helpful AI assistant helping a user fill out a {document_type} legal document.

Current situation:
- Progress: {progress} fields completed
- Currently asking for: "{field}"
- User's question: "{message}"

Fields we need: {field_names}

Respond to the user's question in a helpful, friendly way. Then gently guide them back to answering the current question.

Keep your response concise (2-3 sentences max) and end by asking for the "{field}" again."""

# (keywords that must all appear in the label, question)
QUESTION_HINTS = [
    (("company", "name"),
     "What's your company's legal name?\n\n💡 This should match exactly how it appears in your incorporation documents."),
    (("investor", "name"),
     "What's the investor's full legal name?\n\n💡 For individuals, use their full name (e.g., \"John Michael Smith\"). "
     "For entities, use the complete legal name (e.g., \"Acme Ventures LLC\")."),
    (("date", "safe"),
     "What's the date of this SAFE agreement?\n\n💡 Use the date when the agreement is being signed. "
     "Common format: \"January 1, 2024\" or \"1/1/2024\""),
    (("state", "incorporation"),
     "In which state is your company legally incorporated?\n\n💡 Most startups choose Delaware for its "
     "business-friendly laws.\n\nExamples: Delaware, California, New York, Texas"),
    (("governing", "law"),
     "Which state's laws should govern this agreement?\n\n💡 This is typically the same as your state of "
     "incorporation.\n\nExamples: Delaware, California, New York"),
    (("valuation", "cap"),
     "What's the valuation cap for this SAFE?\n\n💡 This is the maximum company valuation at which the SAFE "
     "converts to equity. Common range: $5M - $20M for seed stage.\n\nExample: $10,000,000"),
    (("purchase", "amount"),
     "What's the investment amount?\n\n💡 This is the total amount the investor is contributing.\n\nExample: $100,000"),
    (("title",),
     "What's the signatory's title at the company?\n\n💡 This is usually the person authorized to sign legal "
     "documents.\n\nExamples: CEO, President, Founder"),
]


def _message(role: str, content: str, field_id: Optional[str] = None) -> Message:
    return Message(id=f"msg-{uuid.uuid4().hex[:12]}-{role}", role=role, content=content, field_id=field_id)


def current_field(session: Session) -> Optional[DocumentField]:
    """
    The field being asked about

    A navigation target wins while it is unfilled; otherwise the first
    unfilled field in parser order.
    """
    if session.active_field_id:
        for field in session.fields:
            if field.id == session.active_field_id and field.id not in session.filled_fields:
                return field
    for field in session.fields:
        if field.id not in session.filled_fields:
            return field
    return None


def find_field_by_name(fields: List[DocumentField], text: str) -> Optional[DocumentField]:
    """Match text against field labels in either direction, separators ignored"""
    wanted = normalize_placeholder(text)
    if not wanted:
        return None
    for field in fields:
        if normalize_placeholder(field.placeholder) == wanted:
            return field
    candidates = [
        field for field in fields
        if normalize_placeholder(field.placeholder) in wanted or wanted in normalize_placeholder(field.placeholder)
    ]
    if not candidates:
        return None
    # the most specific label mentioned wins
    return max(candidates, key=lambda field: len(field.placeholder))


def generate_question(field: DocumentField) -> str:
    """Question text for a field, with guidance where the label is recognized"""
    lower = normalize_placeholder(field.placeholder)
    for keywords, question in QUESTION_HINTS:
        if all(keyword in lower for keyword in keywords):
            return question

    question = f"What's the {field.placeholder}?"
    if field.enrichment and field.enrichment.examples:
        question += f"\n\n💡 {field.enrichment.description}\n\nExamples: {', '.join(field.enrichment.examples[:3])}"
    elif "date" in lower:
        question += "\n\n💡 You can use formats like: January 1, 2024 or 1/1/2024"
    elif field.type == FieldType.CURRENCY:
        question += "\n\n💡 Enter the amount in dollars (e.g., $100,000 or 100000)"
    elif field.type == FieldType.ENUM and field.options:
        question += f"\n\nOptions: {', '.join(field.options)}"
    return question


def format_field_list(fields: List[DocumentField]) -> str:
    return "\n".join(f"{index + 1}. {field.placeholder}" for index, field in enumerate(fields))


class ConversationEngine:
    """
    Drives one session through filling, review, changing and complete

    Every turn works on a copy of the session; the returned
    ConversationTurn carries the updated copy.
    """

    def __init__(
        self,
        validator: Optional[ConversationalValidator] = None,
        llm: Optional[LLMService] = None,
        legal_validator: Optional[DocumentValidator] = None,
    ):
        self.validator = validator or ConversationalValidator()
        self.legal_validator = legal_validator or DocumentValidator()
        self.llm = llm

    def start_conversation(self, session: Session) -> ConversationTurn:
        updated = session.model_copy(deep=True)
        field = current_field(updated)
        if field is None:
            updated.status = SessionStatus.COMPLETE
            reply = "I didn't find any fields to fill in this document. You can download it as-is."
        else:
            updated.status = SessionStatus.FILLING
            reply = (
                f"Hi! I'll help you fill out this document. I need to collect {len(updated.fields)} "
                f"pieces of information.\n\n{generate_question(field)}"
            )
        updated.conversation_history.append(_message("assistant", reply, field.id if field else None))
        return ConversationTurn(reply_text=reply, session=updated)

    def advance_conversation(self, message: str, session: Session) -> ConversationTurn:
        """Handle one user message and return the reply plus the updated session"""
        updated = session.model_copy(deep=True)
        updated.conversation_history.append(_message("user", message))
        if updated.status == SessionStatus.PARSING:
            updated.status = SessionStatus.FILLING

        logger.debug("Turn for session %s in %s", updated.session_id, updated.status.value)
        if updated.status == SessionStatus.FILLING:
            reply = self._handle_filling(updated, message)
        elif updated.status == SessionStatus.REVIEW:
            reply = self._handle_review(updated, message)
        elif updated.status == SessionStatus.CHANGING:
            reply = self._handle_changing(updated, message)
        else:
            reply = (
                "✅ Your document is already finalized. Download it now, "
                "or upload a new document to start over."
            )

        field = current_field(updated) if updated.status == SessionStatus.FILLING else None
        updated.conversation_history.append(_message("assistant", reply, field.id if field else None))
        return ConversationTurn(reply_text=reply, session=updated)

    # filling

    def _handle_filling(self, session: Session, message: str) -> str:
        field = current_field(session)
        if field is None:
            return self._enter_review(session)

        intent = self.detect_intent(message, field)
        logger.info("Detected intent %s for field %s", intent.value, field.placeholder)

        if intent == Intent.NAVIGATE:
            return self._navigate(session, message, field)
        if intent in (Intent.QUESTION, Intent.HELP):
            return self.answer_question(message, field, session)

        value = message.strip()
        result = self.validator.check(field, value)
        if not result.valid:
            reply = result.error or "That doesn't look quite right. Could you try again?"
            if result.suggestion:
                reply += f"\n\n{result.suggestion}"
            return reply

        session.filled_fields[field.id] = value
        session.active_field_id = None
        logger.info("Filled %s (%s)", field.placeholder, session.progress)

        next_field = current_field(session)
        if next_field is None:
            return self._enter_review(session)
        return f"Got it! {generate_question(next_field)}"

    def _navigate(self, session: Session, message: str, field: DocumentField) -> str:
        target = find_field_by_name(session.fields, message)
        if target is None:
            return (
                f"I couldn't find a field matching \"{message}\". Here are the available fields:\n\n"
                f"{format_field_list(session.fields)}\n\nWhich one would you like to fill?"
            )
        if target.id in session.filled_fields:
            return (
                f"**{target.placeholder}** is already filled. You can change it once all fields are "
                f"collected.\n\n{generate_question(field)}"
            )
        session.active_field_id = target.id
        return f"Sure! Let's fill in {target.placeholder}.\n\n{generate_question(target)}"

    def detect_intent(self, message: str, field: DocumentField) -> Intent:
        """Keyword fast path for navigation, then a one-word LLM classification"""
        if NAVIGATION_COMMAND.search(message):
            return Intent.NAVIGATE
        if self.llm is None or not self.llm.available:
            return Intent.ANSWER

        try:
            response = self.llm.complete(
                INTENT_PROMPT.format(field=field.placeholder, message=message),
                "You are an intent classifier. Respond with only one word.",
            )
        except AIServiceError as e:
            logger.warning("Intent detection failed, assuming answer: %s", e)
            return Intent.ANSWER

        word = response.strip().strip(".\"'").lower()
        try:
            return Intent(word)
        except ValueError:
            return Intent.ANSWER

    def answer_question(self, message: str, field: DocumentField, session: Session) -> str:
        filled = len(session.filled_fields)
        total = len(session.fields)
        fallback = (
            f"I understand you have a question! We're currently filling out your {session.document_type} "
            f"document. We've completed {filled} out of {total} fields so far.\n\n"
            f"Let's continue - what's the {field.placeholder}?"
        )
        if self.llm is None or not self.llm.available:
            return fallback

        prompt = QUESTION_PROMPT.format(
            document_type=session.document_type,
            progress=f"{filled}/{total}",
            field=field.placeholder,
            message=message,
            field_names=", ".join(f.placeholder for f in session.fields),
        )
        try:
            return self.llm.complete(prompt, "You are a friendly, knowledgeable assistant. Be helpful but concise.").strip()
        except AIServiceError as e:
            logger.warning("Question answering failed, using fallback: %s", e)
            return fallback

    def stream_question(self, session: Session) -> Iterator[str]:
        """Stream a conversational question for the current field, falling back to the static one"""
        field = current_field(session)
        if field is None:
            yield "Great! We've collected all the information. Let me prepare your document..."
            return
        if self.llm is None or not self.llm.available:
            yield generate_question(field)
            return

        recent = "\n".join(f"{m.role}: {m.content}" for m in session.conversation_history[-3:])
        prompt = (
            "Generate a natural, conversational question to ask the user for this information:\n\n"
            f"Field: {field.placeholder}\nType: {field.type.value}\n\n"
            f"Previous conversation:\n{recent}\n\nMake the question friendly and clear."
        )
        produced = False
        try:
            for chunk in self.llm.stream(prompt, "You are a friendly assistant helping users fill out legal documents."):
                produced = True
                yield chunk
        except AIServiceError as e:
            logger.warning("Question streaming failed: %s", e)
            if not produced:
                yield generate_question(field)

    def _enter_review(self, session: Session) -> str:
        session.status = SessionStatus.REVIEW
        session.active_field_id = None
        logger.info("All fields collected for session %s, entering review", session.session_id)
        return self.build_summary(session)

    @staticmethod
    def build_summary(session: Session) -> str:
        lines = [
            f"{index + 1}. **{field.placeholder}**: {session.filled_fields.get(field.id, '(not filled)')}"
            for index, field in enumerate(session.fields)
        ]
        return (
            "✅ **Great! I've collected all the information.**\n\nHere's what we have:\n\n"
            + "\n".join(lines)
            + "\n\n📋 **What would you like to do?**\n\n"
            + COMMAND_MENU
            + "\n\n💡 *Tip: For legal documents, it's important to double-check all information before finalizing.*"
        )

    # review

    def _handle_review(self, session: Session, message: str) -> str:
        text = message.strip()

        change = CHANGE_COMMAND.search(text)
        if change:
            name = change.group("name").strip()
            target = find_field_by_name(session.fields, name)
            if target is None:
                return (
                    f"❌ I couldn't find a field matching \"{name}\".\n\nAvailable fields:\n"
                    f"{format_field_list(session.fields)}\n\nPlease try again or type **'confirm'** to proceed."
                )
            session.status = SessionStatus.CHANGING
            session.changing_field_id = target.id
            current = session.filled_fields.get(target.id, "(not filled)")
            return f"📝 What should the new value be for **{target.placeholder}**?\n\nCurrent value: \"{current}\""

        if CONFIRM_COMMAND.search(text):
            session.status = SessionStatus.COMPLETE
            logger.info("Session %s confirmed", session.session_id)
            return "✅ Perfect! Your document is ready. Download it to get your completed file."

        if REVIEW_COMMAND.search(text):
            return self.review_report(session)

        return f"I didn't understand that command. Here's what you can do:\n\n{COMMAND_MENU}"

    def review_report(self, session: Session) -> str:
        """Non-blocking list of short answers and legal-grade findings"""
        issues = []
        for field in session.fields:
            value = session.filled_fields.get(field.id)
            if value and len(value) < 3:
                issues.append(f"• **{field.placeholder}**: \"{value}\" seems very short. Please verify.")

        result = self.legal_validator.validate(session.fields, session.filled_fields)
        issues += [f"• **{error.field}**: {error.message}" for error in result.errors]
        issues += [f"• **{warning.field}**: {warning.message}" for warning in result.warnings]

        report = "🔍 **Reviewing your information...**\n\n"
        if issues:
            return (
                report + "⚠️ **I noticed a few things:**\n\n" + "\n".join(issues)
                + "\n\nWould you like to make any changes, or should we proceed?"
            )
        return (
            report + "✅ Everything looks good! All fields are properly filled.\n\n"
            "Type **'confirm'** to finalize, or **'change [field name]'** to update any field."
        )

    # changing

    def _handle_changing(self, session: Session, message: str) -> str:
        field = next((f for f in session.fields if f.id == session.changing_field_id), None)
        if field is None:
            session.status = SessionStatus.REVIEW
            session.changing_field_id = None
            return f"I lost track of which field to change. Here's what you can do:\n\n{COMMAND_MENU}"

        value = message.strip()
        result = self.validator.check(field, value)
        if not result.valid:
            reply = result.error or "That value doesn't look right. Please try again."
            if result.suggestion:
                reply += f"\n\n{result.suggestion}"
            return reply

        session.filled_fields[field.id] = value
        session.changing_field_id = None
        session.status = SessionStatus.REVIEW
        return f"✅ Updated **{field.placeholder}** to \"{value}\"\n\nWould you like to:\n{COMMAND_MENU}"


class ConversationService:
    """Loads a session from the store, runs one turn, and saves it back"""

    def __init__(self, store: SessionStore, engine: Optional[ConversationEngine] = None):
        self.store = store
        self.engine = engine or ConversationEngine()

    def get_session(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def start(self, session_id: str) -> ConversationTurn:
        turn = self.engine.start_conversation(self.get_session(session_id))
        self.store.set(session_id, turn.session)
        return turn

    def handle_message(self, session_id: str, message: str) -> ConversationTurn:
        turn = self.engine.advance_conversation(message, self.get_session(session_id))
        self.store.set(session_id, turn.session)
        return turn
