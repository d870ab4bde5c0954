import random
import string

from django.conf import settings

from .errors import PersistenceFailure
from .models import GameSession

CODE_LENGTH = getattr(settings, "LIVEQUIZ_CODE_LENGTH", 6)
CODE_ALPHABET = string.ascii_uppercase + string.digits


def code_in_use(code: str) -> bool:
    return (
        GameSession.objects.filter(code=code)
        .exclude(status=GameSession.Status.COMPLETED)
        .exists()
    )


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return a join code not held by any session that is still active."""
    for _ in range(10):
        code = "".join(random.choices(CODE_ALPHABET, k=length))
        if not code_in_use(code):
            return code
    raise PersistenceFailure("Failed to allocate a join code. Please try again later.")
