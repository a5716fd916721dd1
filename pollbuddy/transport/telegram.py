# pollbuddy/transport/telegram.py

import logging
from dataclasses import dataclass
from typing import Optional

import requests

# Telegram Bot API adapter: outbound calls over HTTPS and parsing of
# inbound updates into transport-neutral events.

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
REQUEST_TIMEOUT = 15


@dataclass
class InboundEvent:
    """One user interaction. Exactly one of command/action/text/photo is set."""
    chat_id: str
    command: Optional[str] = None
    args: tuple = ()
    action: Optional[str] = None
    callback_id: Optional[str] = None
    text: Optional[str] = None
    photo: Optional[str] = None
    username: Optional[str] = None

    @property
    def kind(self):
        if self.command is not None:
            return 'command'
        if self.action is not None:
            return 'action'
        if self.photo is not None:
            return 'photo'
        if self.text is not None:
            return 'text'
        return 'unknown'


def _display_name(sender):
    if not sender:
        return None
    if sender.get('username'):
        return f"@{sender['username']}"
    return sender.get('first_name')


def parse_update(update) -> Optional[InboundEvent]:
    """Turn a Bot API update into an InboundEvent; None for updates we ignore."""
    if not isinstance(update, dict):
        return None

    callback = update.get('callback_query')
    if callback:
        message = callback.get('message') or {}
        chat = message.get('chat') or callback.get('from') or {}
        if 'id' not in chat:
            return None
        return InboundEvent(
            chat_id=str(chat['id']),
            action=callback.get('data') or '',
            callback_id=callback.get('id'),
            username=_display_name(callback.get('from')),
        )

    message = update.get('message')
    if not message or 'id' not in (message.get('chat') or {}):
        return None
    chat_id = str(message['chat']['id'])
    username = _display_name(message.get('from'))

    if message.get('photo'):
        # sizes are ordered smallest first
        return InboundEvent(chat_id=chat_id, photo=message['photo'][-1]['file_id'], username=username)

    text = message.get('text')
    if text is None:
        return None
    if text.startswith('/'):
        parts = text.split()
        # "/start@NacosPollBuddyBot" in group chats
        command = parts[0][1:].split('@', 1)[0].lower()
        return InboundEvent(chat_id=chat_id, command=command, args=tuple(parts[1:]), username=username)
    return InboundEvent(chat_id=chat_id, text=text, username=username)


def inline_keyboard(choices):
    """``[[(label, action), ...], ...]`` to Bot API reply markup."""
    return {
        'inline_keyboard': [
            [{'text': label, 'callback_data': action} for label, action in row]
            for row in choices
        ]
    }


def split_message(text, limit=MAX_MESSAGE_LENGTH):
    chunks = []
    while len(text) > limit:
        cut = text.rfind('\n', 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip('\n')
    chunks.append(text)
    return chunks


class TelegramTransport:
    def __init__(self, token, api_url='https://api.telegram.org', session=None):
        self.token = token
        self.api_url = api_url.rstrip('/')
        self.session = session or requests.Session()

    def _call(self, method, payload, timeout=REQUEST_TIMEOUT):
        url = f"{self.api_url}/bot{self.token}/{method}"
        try:
            response = self.session.post(url, json=payload, timeout=timeout)
        except requests.RequestException as e:
            raise TransportError(f"{method} failed: {e}")
        try:
            body = response.json()
        except ValueError:
            raise TransportError(f"{method} returned HTTP {response.status_code} with a non-JSON body")
        if response.status_code != 200 or not body.get('ok'):
            raise TransportError(f"{method} rejected: {body.get('description', response.status_code)}")
        return body.get('result')

    def send_message(self, chat_id, text, choices=None):
        chunks = split_message(text)
        result = None
        for i, chunk in enumerate(chunks):
            payload = {'chat_id': chat_id, 'text': chunk}
            # buttons go under the last chunk
            if choices and i == len(chunks) - 1:
                payload['reply_markup'] = inline_keyboard(choices)
            result = self._call('sendMessage', payload)
        return result

    def present_choices(self, chat_id, text, choices):
        return self.send_message(chat_id, text, choices=choices)

    def send_photo(self, chat_id, photo_ref, caption=None):
        payload = {'chat_id': chat_id, 'photo': photo_ref}
        if caption:
            payload['caption'] = caption[:1024]
        return self._call('sendPhoto', payload)

    def answer_callback(self, callback_id):
        return self._call('answerCallbackQuery', {'callback_query_id': callback_id})

    def get_updates(self, offset=None, timeout=20):
        payload = {'timeout': timeout, 'allowed_updates': ['message', 'callback_query']}
        if offset is not None:
            payload['offset'] = offset
        return self._call('getUpdates', payload, timeout=timeout + REQUEST_TIMEOUT) or []

    def set_webhook(self, url, secret=None):
        payload = {'url': url, 'allowed_updates': ['message', 'callback_query']}
        if secret:
            payload['secret_token'] = secret
        return self._call('setWebhook', payload)


class TransportError(Exception):
    """Raised when the Bot API cannot be reached or refuses a call."""
    pass
