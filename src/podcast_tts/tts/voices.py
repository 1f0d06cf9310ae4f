"""
Voice Profiles and Random Voice Selection.

Each episode is narrated by a single voice drawn at random: first a pool
(e.g. premium-female or premium-male) uniformly, then a voice uniformly
within that pool. The random source is injected so that a seeded
``random.Random`` makes selection reproducible in tests and replays.

Example:
    >>> import random
    >>> selector = VoiceSelector.default(rng=random.Random(7))
    >>> voice = selector.select()
    >>> voice.pool in ("premium-female", "premium-male")
    True
"""
from __future__ import annotations

import random
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from podcast_tts.core.errors import ErrorCode, FatalError
from podcast_tts.core.logging import debug, get_logger

_LOG = get_logger("podcast-tts.voices")

VALID_GENDERS = ("FEMALE", "MALE", "NEUTRAL")

PREMIUM_FEMALE = "premium-female"
PREMIUM_MALE = "premium-male"

# Chirp3-HD voices, en-US
FEMALE_VOICES = [
    "en-US-Chirp3-HD-Achernar",
    "en-US-Chirp3-HD-Aoede",
    "en-US-Chirp3-HD-Autonoe",
    "en-US-Chirp3-HD-Callirrhoe",
    "en-US-Chirp3-HD-Despina",
    "en-US-Chirp3-HD-Erinome",
    "en-US-Chirp3-HD-Gacrux",
    "en-US-Chirp3-HD-Kore",
    "en-US-Chirp3-HD-Laomedeia",
    "en-US-Chirp3-HD-Leda",
    "en-US-Chirp3-HD-Pulcherrima",
    "en-US-Chirp3-HD-Sulafat",
    "en-US-Chirp3-HD-Vindemiatrix",
    "en-US-Chirp3-HD-Zephyr",
]

MALE_VOICES = [
    "en-US-Chirp3-HD-Bellatrix",
    "en-US-Chirp3-HD-Canopus",
    "en-US-Chirp3-HD-Castor",
    "en-US-Chirp3-HD-Enif",
    "en-US-Chirp3-HD-Fenrir",
    "en-US-Chirp3-HD-Hadar",
    "en-US-Chirp3-HD-Helvetios",
    "en-US-Chirp3-HD-Isonoe",
    "en-US-Chirp3-HD-Menkar",
    "en-US-Chirp3-HD-Miram",
    "en-US-Chirp3-HD-Orion",
    "en-US-Chirp3-HD-Polaris",
    "en-US-Chirp3-HD-Rigel",
    "en-US-Chirp3-HD-Sirius",
    "en-US-Chirp3-HD-Spica",
    "en-US-Chirp3-HD-Tarazed",
]

DEFAULT_POOLS: Dict[str, List[str]] = {
    PREMIUM_FEMALE: FEMALE_VOICES,
    PREMIUM_MALE: MALE_VOICES,
}

_POOL_GENDERS = {
    PREMIUM_FEMALE: "FEMALE",
    PREMIUM_MALE: "MALE",
}


@dataclass(frozen=True)
class VoiceProfile:
    """
    An immutable voice choice for one episode.

    Attributes:
        language_code: BCP-47 code, e.g. "en-US".
        name: Service voice name.
        gender: "FEMALE", "MALE" or "NEUTRAL".
        pool: Pool the voice was drawn from.
    """
    language_code: str
    name: str
    gender: str
    pool: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VoiceProfile":
        """Rebuild a profile from to_dict() output; validates it."""
        try:
            voice = cls(
                language_code=str(data["language_code"]),
                name=str(data["name"]),
                gender=str(data["gender"]),
                pool=str(data.get("pool", "")),
            )
        except (KeyError, TypeError) as e:
            raise FatalError(
                f"malformed voice profile: {e}",
                code=ErrorCode.INVALID_VOICE,
                details={"voice": dict(data) if isinstance(data, Mapping) else repr(data)},
            ) from e
        validate_voice(voice)
        return voice


def validate_voice(voice: VoiceProfile) -> VoiceProfile:
    """
    Check that a profile can be sent to the synthesis service.

    Raises:
        FatalError: With code INVALID_VOICE.
    """
    problems = []
    if not voice.language_code.strip():
        problems.append("language_code is empty")
    if not voice.name.strip():
        problems.append("name is empty")
    if voice.gender not in VALID_GENDERS:
        problems.append(f"gender must be one of {VALID_GENDERS}")
    if problems:
        raise FatalError(
            "malformed voice profile: " + "; ".join(problems),
            code=ErrorCode.INVALID_VOICE,
            details={"voice": voice.to_dict()},
        )
    return voice


def _gender_for_pool(pool: str) -> str:
    if pool in _POOL_GENDERS:
        return _POOL_GENDERS[pool]
    lowered = pool.lower()
    if "female" in lowered:
        return "FEMALE"
    if "male" in lowered:
        return "MALE"
    return "NEUTRAL"


class VoiceSelector:
    """
    Uniform random voice selection over named pools.

    Args:
        pools: Pool name -> list of VoiceProfile.
        rng: Random source. Pass ``random.Random(seed)`` for determinism.
    """

    def __init__(self, pools: Mapping[str, Sequence[VoiceProfile]], rng: Optional[random.Random] = None):
        self._pools: Dict[str, List[VoiceProfile]] = {name: list(voices) for name, voices in pools.items()}
        self._rng = rng or random.Random()
        if not self._pools:
            raise FatalError("no voice pools configured", code=ErrorCode.INVALID_VOICE)
        for voices in self._pools.values():
            for voice in voices:
                validate_voice(voice)

    @classmethod
    def from_names(
        cls,
        pools: Mapping[str, Sequence[str]],
        language_code: str = "en-US",
        rng: Optional[random.Random] = None,
    ) -> "VoiceSelector":
        """Build profiles from plain voice names; gender follows the pool name."""
        profiles = {
            pool: [
                VoiceProfile(language_code=language_code, name=name, gender=_gender_for_pool(pool), pool=pool)
                for name in names
            ]
            for pool, names in pools.items()
        }
        return cls(profiles, rng=rng)

    @classmethod
    def default(cls, language_code: str = "en-US", rng: Optional[random.Random] = None) -> "VoiceSelector":
        return cls.from_names(DEFAULT_POOLS, language_code=language_code, rng=rng)

    @property
    def pool_names(self) -> List[str]:
        return sorted(self._pools)

    def voices(self, pool: str) -> List[VoiceProfile]:
        return list(self._pools.get(pool, []))

    def select(self, pool: Optional[str] = None) -> VoiceProfile:
        """
        Draw a voice.

        Args:
            pool: Restrict the draw to this pool; otherwise the pool itself
                is drawn first.

        Raises:
            FatalError: If the pool is unknown or empty.
        """
        if pool is None:
            pool = self._rng.choice(self.pool_names)
        voices = self._pools.get(pool)
        if not voices:
            raise FatalError(
                f"voice pool {pool!r} is unknown or empty",
                code=ErrorCode.INVALID_VOICE,
                details={"pools": self.pool_names},
            )
        voice = self._rng.choice(voices)
        debug(_LOG, "voice_selected", pool=pool, voice=voice.name)
        return voice
