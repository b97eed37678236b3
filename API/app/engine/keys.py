"""Document key layout in the store."""

STUDENTS = "students/"
PROGRESS = "progress/"
RESULTS = "results/"
QUARTERS = "quarters/"
ATTEMPTS = "attempts/"
CONTENT = "content/"


def student_key(student_id: str) -> str:
    return f"{STUDENTS}{student_id}"


def progress_key(student_id: str) -> str:
    return f"{PROGRESS}{student_id}"


def results_prefix(student_id: str) -> str:
    return f"{RESULTS}{student_id}/"


def result_key(student_id: str, result_id: str) -> str:
    return f"{results_prefix(student_id)}{result_id}"


def quarter_status_key(student_id: str) -> str:
    return f"{QUARTERS}{student_id}"


def attempt_key(attempt_id: str) -> str:
    return f"{ATTEMPTS}{attempt_id}"


def content_key(content_id: str) -> str:
    return f"{CONTENT}{content_id}"
