"""
Data models for encrypted records and the plaintext payloads they carry
"""

from enum import Enum
from typing import Optional, List, Dict, Any

from .codec import new_id, now_iso
from .exceptions import InvalidSettingsError


class Intent(Enum):
    # Ritual categories; stored in the clear next to the ciphertext as a label
    UNLOAD = "unload"
    MAKE_SENSE = "make_sense"
    HELP_WRITE = "help_write"


class Collection(Enum):
    # The two keyed record collections
    ENTRIES = "entries"
    MEMORY = "memory"


DEFAULT_AUTO_LOCK_MINUTES = 10
MEMORY_RITUAL_NAME = "Memory"


class EncryptedRecord:
    """
        Persisted envelope for one unit of user content.

        Only ``ciphertext_b64`` is secret. ``created_at``, ``ritual_name`` and
        ``intent`` stay readable without a passphrase so that listing and date
        filtering work while locked.
    """

    __slots__ = (
        'id',
        'created_at',
        'ritual_name',
        'intent',
        'ciphertext_b64',
        'iv_b64',
        'salt_b64',
        'kdf_version',
    )

    def __init__(self, id, created_at, ritual_name, intent, ciphertext_b64, iv_b64, salt_b64, kdf_version):
        self.id = id
        self.created_at = created_at
        self.ritual_name = ritual_name
        self.intent = intent if isinstance(intent, Intent) else Intent(intent)
        self.ciphertext_b64 = ciphertext_b64
        self.iv_b64 = iv_b64
        self.salt_b64 = salt_b64
        self.kdf_version = int(kdf_version)

    def to_dict(self):
        """
            On-disk / backup shape
        """
        return {
            'id': self.id,
            'createdAt': self.created_at,
            'ritualName': self.ritual_name,
            'intent': self.intent.value,
            'ciphertextB64': self.ciphertext_b64,
            'ivB64': self.iv_b64,
            'saltB64': self.salt_b64,
            'kdfVersion': self.kdf_version,
        }

    def __repr__(self):
        return f"EncryptedRecord(id={self.id!r}, created_at={self.created_at!r}, intent={self.intent.value!r})"

    def __eq__(self, other):
        if not isinstance(other, EncryptedRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.id)


def record_from_dict(data):
    """
        Create an EncryptedRecord from its camelCase dict shape
    """
    return EncryptedRecord(
        id=data['id'],
        created_at=data['createdAt'],
        ritual_name=data['ritualName'],
        intent=data['intent'],
        ciphertext_b64=data['ciphertextB64'],
        iv_b64=data['ivB64'],
        salt_b64=data['saltB64'],
        kdf_version=data['kdfVersion'],
    )


def new_record_index(intent, ritual_name: str) -> Dict[str, Any]:
    # Fresh id + timestamp + clear-text labels for a record about to be written
    return {
        'id': new_id(),
        'createdAt': now_iso(),
        'intent': Intent(intent).value,
        'ritualName': ritual_name,
    }


class EntryStep:
    """
        One prompt/response pair of a ritual, with optional AI output
    """

    __slots__ = ('prompt', 'response', 'ai_reflection', 'ai_question')

    def __init__(self, prompt, response, ai_reflection=None, ai_question=None):
        self.prompt = prompt
        self.response = response
        self.ai_reflection = ai_reflection
        self.ai_question = ai_question

    def to_dict(self):
        return {
            'prompt': self.prompt,
            'response': self.response,
            'aiReflection': self.ai_reflection,
            'aiQuestion': self.ai_question,
        }

    def __eq__(self, other):
        if not isinstance(other, EntryStep):
            return NotImplemented
        return self.to_dict() == other.to_dict()


class EntryTags:
    """
        Descriptive labels; no scoring semantics
    """

    __slots__ = ('emotion', 'context')

    def __init__(self, emotion=None, context=None):
        self.emotion = emotion
        self.context = context

    def to_dict(self):
        return {'emotion': self.emotion, 'context': self.context}

    def __eq__(self, other):
        if not isinstance(other, EntryTags):
            return NotImplemented
        return self.to_dict() == other.to_dict()


class EntryPayload:
    """
        Plaintext journal entry. Only exists transiently after decryption.
    """

    __slots__ = ('id', 'created_at', 'intent', 'ritual_id', 'ritual_name', 'steps', 'tags')

    def __init__(self, id=None, created_at=None, intent=Intent.UNLOAD, ritual_id="", ritual_name="", steps=None, tags=None):
        self.id = id if id is not None else new_id()
        self.created_at = created_at if created_at is not None else now_iso()
        self.intent = intent if isinstance(intent, Intent) else Intent(intent)
        self.ritual_id = ritual_id
        self.ritual_name = ritual_name
        self.steps: List[EntryStep] = list(steps or [])
        self.tags: Optional[EntryTags] = tags

    def to_dict(self):
        data = {
            'id': self.id,
            'createdAt': self.created_at,
            'intent': self.intent.value,
            'ritualId': self.ritual_id,
            'ritualName': self.ritual_name,
            'steps': [s.to_dict() for s in self.steps],
        }
        if self.tags is not None:
            data['tags'] = self.tags.to_dict()
        return data

    def __repr__(self):
        return f"EntryPayload(id={self.id!r}, ritual_name={self.ritual_name!r}, steps={len(self.steps)})"

    def __eq__(self, other):
        if not isinstance(other, EntryPayload):
            return NotImplemented
        return self.to_dict() == other.to_dict()


def entry_from_dict(data):
    """
        Create an EntryPayload from decrypted JSON.
        Raises KeyError / ValueError / TypeError on a malformed document.
    """
    if not isinstance(data, dict):
        raise TypeError("entry payload must be a JSON object")

    steps = []
    for raw in data.get('steps') or []:
        steps.append(EntryStep(
            prompt=raw['prompt'],
            response=raw['response'],
            ai_reflection=raw.get('aiReflection'),
            ai_question=raw.get('aiQuestion'),
        ))

    tags = None
    if data.get('tags') is not None:
        tags = EntryTags(
            emotion=data['tags'].get('emotion'),
            context=data['tags'].get('context'),
        )

    return EntryPayload(
        id=data['id'],
        created_at=data['createdAt'],
        intent=data['intent'],
        ritual_id=data.get('ritualId', ""),
        ritual_name=data.get('ritualName', ""),
        steps=steps,
        tags=tags,
    )


class MemoryItem:
    """
        A single user-approved continuity sentence
    """

    __slots__ = ('id', 'created_at', 'text')

    def __init__(self, id, created_at, text):
        self.id = id
        self.created_at = created_at
        self.text = text

    def to_dict(self):
        return {'id': self.id, 'createdAt': self.created_at, 'text': self.text}

    def __repr__(self):
        return f"MemoryItem(id={self.id!r}, created_at={self.created_at!r})"

    def __eq__(self, other):
        if not isinstance(other, MemoryItem):
            return NotImplemented
        return self.to_dict() == other.to_dict()


def memory_from_dict(data):
    if not isinstance(data, dict):
        raise TypeError("memory item must be a JSON object")
    text = data['text']
    if not isinstance(text, str):
        raise TypeError("memory text must be a string")
    return MemoryItem(id=data['id'], created_at=data['createdAt'], text=text)


class Settings:
    """
        Feature toggles, auto-lock and AI key handling preference.

        ``ai_api_key`` is the plaintext form kept for compatibility with older
        settings rows; new writes use ``encrypted_ai_api_key``
        (``{"ciphertextB64", "ivB64"}`` under the session key). Neither may
        survive a save while ``remember_ai_key`` is false.
    """

    __slots__ = (
        'ai_enabled',
        'insights_enabled',
        'auto_lock_minutes',
        'remember_ai_key',
        'use_default_ai_key',
        'ai_api_key',
        'encrypted_ai_api_key',
    )

    def __init__(
        self,
        ai_enabled=True,
        insights_enabled=True,
        auto_lock_minutes=DEFAULT_AUTO_LOCK_MINUTES,
        remember_ai_key=False,
        use_default_ai_key=False,
        ai_api_key=None,
        encrypted_ai_api_key=None,
    ):
        self.ai_enabled = bool(ai_enabled)
        self.insights_enabled = bool(insights_enabled)
        self.auto_lock_minutes = auto_lock_minutes
        self.remember_ai_key = bool(remember_ai_key)
        self.use_default_ai_key = bool(use_default_ai_key)
        self.ai_api_key = ai_api_key
        self.encrypted_ai_api_key = encrypted_ai_api_key

    def without_ai_key(self):
        # Copy with every form of the API key removed
        return Settings(
            ai_enabled=self.ai_enabled,
            insights_enabled=self.insights_enabled,
            auto_lock_minutes=self.auto_lock_minutes,
            remember_ai_key=self.remember_ai_key,
            use_default_ai_key=self.use_default_ai_key,
        )

    def safe_projection(self):
        """
            Fields that may leave the device in a backup. Never an API key.
        """
        return {
            'aiEnabled': self.ai_enabled,
            'autoLockMinutes': self.auto_lock_minutes,
            'insightsEnabled': self.insights_enabled,
            'rememberAiKey': self.remember_ai_key,
        }

    def to_dict(self):
        data = {
            'aiEnabled': self.ai_enabled,
            'insightsEnabled': self.insights_enabled,
            'autoLockMinutes': self.auto_lock_minutes,
            'rememberAiKey': self.remember_ai_key,
            'useDefaultAiKey': self.use_default_ai_key,
        }
        if self.ai_api_key is not None:
            data['aiApiKey'] = self.ai_api_key
        if self.encrypted_ai_api_key is not None:
            data['encryptedAiApiKey'] = dict(self.encrypted_ai_api_key)
        return data

    def __repr__(self):
        # never show key material
        return (
            f"Settings(ai_enabled={self.ai_enabled!r}, auto_lock_minutes={self.auto_lock_minutes!r}, "
            f"remember_ai_key={self.remember_ai_key!r})"
        )

    def __eq__(self, other):
        if not isinstance(other, Settings):
            return NotImplemented
        return self.to_dict() == other.to_dict()


def check_auto_lock_minutes(value):
    """
        Return ``value`` if it is a usable auto-lock window in minutes.
        Booleans, non-numbers and values <= 0 raise InvalidSettingsError.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        raise InvalidSettingsError(f"autoLockMinutes must be a number greater than 0, got {value!r}")
    return value


def settings_from_dict(data):
    """
        Create Settings from a stored dict, falling back to defaults per field
    """
    data = data or {}
    return Settings(
        ai_enabled=data.get('aiEnabled', True),
        insights_enabled=data.get('insightsEnabled', True),
        auto_lock_minutes=data.get('autoLockMinutes', DEFAULT_AUTO_LOCK_MINUTES),
        remember_ai_key=data.get('rememberAiKey', False),
        use_default_ai_key=data.get('useDefaultAiKey', False),
        ai_api_key=data.get('aiApiKey'),
        encrypted_ai_api_key=data.get('encryptedAiApiKey'),
    )
