"""
Seed script — inserts sample submissions and asks for feedback on them.

Usage:
    python -m scripts.seed_submissions

This creates, for one classroom task:
- 3 first-attempt submissions (auto-enqueued, like the submit path does)
- 1 second-attempt submission (not auto-enqueued; requested over HTTP instead)
- 1 empty submission (the stub provider flags it as a syntax error)

Submissions are written straight to the database because creating them is
another module's job. Feedback is then requested and polled through the API.
Run the API and `python -m worker.main` first.
"""

import time
import uuid

import httpx

from models.base import Base, SyncSessionLocal, sync_engine
from models.submission import Submission
from services.enqueuer import enqueue_on_submit

BASE_URL = "http://localhost:8000"

SAMPLES = [
    ("def mean(xs):\n    return sum(xs) / len(xs)\n", 1),
    ("x=1 # TODO", 1),
    ("def fib(n):\n    # TODO memoize\n    return n if n < 2 else fib(n - 1) + fib(n - 2)\n", 1),
    ("def mean(xs):\n    if not xs:\n        return 0.0\n    return sum(xs) / len(xs)\n", 2),
    ("", 1),
]


def seed():
    Base.metadata.create_all(sync_engine)
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)
    classroom_task_id = uuid.uuid4()
    task_id = uuid.uuid4()
    student_id = uuid.uuid4()

    print(f"Inserting {len(SAMPLES)} submissions for classroom task {classroom_task_id}...\n")

    submission_ids = []
    for code_text, attempt_no in SAMPLES:
        submission = Submission(
            task_id=task_id,
            classroom_task_id=classroom_task_id,
            student_id=student_id,
            attempt_no=attempt_no,
            code_text=code_text,
            language="python",
        )
        with SyncSessionLocal() as session:
            session.add(submission)
            session.commit()
        submission_ids.append(submission.id)

        if enqueue_on_submit(SyncSessionLocal, submission):
            print(f"  [auto]   attempt {attempt_no} → {str(submission.id)[:8]}...")
        else:
            resp = client.post(
                f"/submissions/{submission.id}/ai-feedback/request",
                json={"reason": "seed script"},
            )
            resp.raise_for_status()
            print(f"  [manual] attempt {attempt_no} → {str(submission.id)[:8]}... ({resp.json()['status']})")

    print("\nPolling statuses (Ctrl+C to stop)...")
    params = [("submission_id", str(sid)) for sid in submission_ids]
    for _ in range(20):
        statuses = client.get("/ai-feedback/statuses", params=params).json()["statuses"]
        print("  " + ", ".join(f"{sid[:8]}={status}" for sid, status in statuses.items()))
        if all(status in ("SUCCEEDED", "DEAD") for status in statuses.values()):
            break
        time.sleep(3)

    print("\nDone! With FEEDBACK_DEBUG_ENABLED=true you can also look at:")
    print("List jobs:     curl http://localhost:8000/ai-feedback/jobs")
    print("Dead letters:  curl http://localhost:8000/ai-feedback/jobs/dead-letter")


if __name__ == "__main__":
    seed()
