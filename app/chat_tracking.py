"""
Chat service: conversations with the food safety assistant.

Every user message is stored, answered through the analyzer (which falls back
to canned replies when the AI is off) and the answer stored alongside it.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Sequence
from sqlalchemy import and_, desc
from app.config import CHAT_HISTORY_MESSAGES
from app.database import Chat, ChatMessage, DEFAULT_CHAT_TITLE, get_db, close_db
from app.models import ChatRole, InvalidInputError

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50

def chat_title_from_message(message: str) -> str:
    message = message.strip()
    if not message:
        return DEFAULT_CHAT_TITLE
    if len(message) > TITLE_MAX_CHARS:
        return message[:TITLE_MAX_CHARS] + "..."
    return message

def format_recent_history(messages: Sequence[Dict[str, Any]], limit: int = CHAT_HISTORY_MESSAGES) -> str:
    """Last `limit` messages as 'role: content' lines."""
    recent = list(messages)[-limit:] if limit > 0 else []
    return "\n".join(f"{m['role']}: {m['content']}" for m in recent)

def message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        'id': message.id,
        'role': message.role,
        'content': message.content,
        'timestamp': message.timestamp,
    }

def chat_to_dict(chat: Chat, include_messages: bool = False) -> Dict[str, Any]:
    data = {
        'id': chat.id,
        'scan_id': chat.scan_id,
        'title': chat.title,
        'is_active': chat.is_active,
        'message_count': chat.message_count,
        'last_activity': chat.last_activity,
        'created_at': chat.created_at,
    }
    if include_messages:
        data['messages'] = [message_to_dict(m) for m in chat.messages]
    return data

class ChatService:
    """Handles chat creation, messaging and history"""

    @staticmethod
    async def _reply(analyzer, message: str, history: List[Dict[str, Any]], profile) -> str:
        reply = await analyzer.chat_about_meal(message, format_recent_history(history), profile)
        return reply.response_text

    @staticmethod
    async def start_chat(user_id: int, initial_message: str, analyzer, profile,
                         scan_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Open a chat, answer the first message and return the chat with its messages"""
        if not initial_message or not initial_message.strip():
            raise InvalidInputError("Message content is required")

        response_text = await ChatService._reply(analyzer, initial_message, [], profile)

        db = get_db()
        try:
            now = datetime.now(timezone.utc)
            chat = Chat(
                user_id=user_id,
                scan_id=scan_id,
                title=chat_title_from_message(initial_message),
                message_count=2,
                last_activity=now,
            )
            chat.messages = [
                ChatMessage(role=ChatRole.USER.value, content=initial_message.strip(), timestamp=now),
                ChatMessage(role=ChatRole.ASSISTANT.value, content=response_text, timestamp=now),
            ]
            db.add(chat)
            db.commit()
            db.refresh(chat)

            logger.info(f"Chat {chat.id} started for user {user_id}")
            return chat_to_dict(chat, include_messages=True)

        except Exception as e:
            db.rollback()
            logger.error(f"Error starting chat: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    async def send_message(chat_id: int, user_id: int, message: str, analyzer,
                           profile) -> Optional[Dict[str, Any]]:
        """Add a message to an active chat and return the assistant's reply"""
        if not message or not message.strip():
            raise InvalidInputError("Message content is required")

        db = get_db()
        try:
            chat = db.query(Chat).filter(
                and_(Chat.id == chat_id, Chat.user_id == user_id, Chat.is_active == True)  # noqa: E712
            ).first()
            if not chat:
                logger.warning(f"Active chat {chat_id} not found for user {user_id}")
                return None

            history = [message_to_dict(m) for m in chat.messages]
            response_text = await ChatService._reply(analyzer, message, history, profile)

            now = datetime.now(timezone.utc)
            if chat.message_count == 0 or chat.title == DEFAULT_CHAT_TITLE:
                chat.title = chat_title_from_message(message)
            user_msg = ChatMessage(role=ChatRole.USER.value, content=message.strip(), timestamp=now)
            assistant_msg = ChatMessage(role=ChatRole.ASSISTANT.value, content=response_text, timestamp=now)
            chat.messages.append(user_msg)
            chat.messages.append(assistant_msg)
            chat.message_count = (chat.message_count or 0) + 2
            chat.last_activity = now
            db.commit()
            db.refresh(assistant_msg)

            return {
                'chat_id': chat_id,
                'user_message': message.strip(),
                'message': message_to_dict(assistant_msg),
                'message_count': chat.message_count,
            }

        except Exception as e:
            db.rollback()
            logger.error(f"Error sending chat message: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def get_chat_history(user_id: int, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Active chats, most recently used first, with pagination info"""
        page = max(1, int(page))
        limit = max(1, int(limit))
        db = get_db()
        try:
            query = db.query(Chat).filter(and_(Chat.user_id == user_id, Chat.is_active == True))  # noqa: E712
            total = query.count()
            chats = (
                query.order_by(desc(Chat.last_activity), desc(Chat.id))
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                'chats': [chat_to_dict(c) for c in chats],
                'pagination': {'page': page, 'limit': limit, 'total': total, 'pages': math.ceil(total / limit)},
            }
        except Exception as e:
            logger.error(f"Error getting chat history: {e}")
            return {'chats': [], 'pagination': {'page': page, 'limit': limit, 'total': 0, 'pages': 0}}
        finally:
            close_db(db)

    @staticmethod
    def get_chat_by_id(chat_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """Chat with all its messages; other users' chats are not visible"""
        db = get_db()
        try:
            chat = db.query(Chat).filter(and_(Chat.id == chat_id, Chat.user_id == user_id)).first()
            return chat_to_dict(chat, include_messages=True) if chat else None
        except Exception as e:
            logger.error(f"Error getting chat {chat_id}: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def archive_chat(chat_id: int, user_id: int) -> bool:
        """Hide a chat from the history; its messages are kept"""
        db = get_db()
        try:
            chat = db.query(Chat).filter(and_(Chat.id == chat_id, Chat.user_id == user_id)).first()
            if not chat:
                return False
            chat.is_active = False
            db.commit()
            logger.info(f"Chat {chat_id} archived for user {user_id}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Error archiving chat: {e}")
            return False
        finally:
            close_db(db)
