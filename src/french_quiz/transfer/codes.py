"""Human-readable transfer code generation."""

import random

TRANSFER_WORDS: tuple[str, ...] = (
    "TREE", "FISH", "MOON", "STAR", "BIRD", "LAKE", "FIRE", "SNOW",
    "RAIN", "WIND", "CAVE", "LEAF", "WAVE", "ROCK", "CORN", "BEAR",
    "FROG", "LION", "WOLF", "DEER", "DUCK", "HAWK", "SEAL", "CRAB",
)

# No visually confusable symbols: 0, O, 1, I, L.
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CONFUSABLE_CHARS = frozenset("0O1IL")

WORD_COUNT = 3
SUFFIX_LENGTH = 4
MIN_CODE_LENGTH = 10


def generate_transfer_code(rng: random.Random | None = None) -> str:
    """Return a code shaped like ``WORD-WORD-WORD-XXXX``.

    The three words are distinct. Pass a seeded ``random.Random`` for
    reproducible codes; the default draws from the OS entropy source.
    """
    rng = rng or random.SystemRandom()
    words = rng.sample(TRANSFER_WORDS, WORD_COUNT)
    suffix = "".join(rng.choice(CODE_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return "-".join([*words, suffix])


def normalize_code(raw: str) -> str:
    return raw.strip().upper()
