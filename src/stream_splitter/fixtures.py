"""Fake roster data for local runs and load tests."""

import csv
import io
import random
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterator

import structlog

logger = structlog.get_logger()

HEADERS = ["School", "Semester", "Grade", "Subject", "Class", "Student Name", "Score"]

FAILURE_RATE = 3  # percent of enrollments scored 0
CLASSES_PER_DAY = 5

CLASSES: dict[str, list[str]] = {
    "Math": ["Algebra I", "Algebra II", "Geometry", "Pre-Calculus", "Calculus", "Statistics"],
    "Science": ["Biology", "Chemistry", "Physics", "Earth Science", "Anatomy"],
    "English": ["Literature", "Composition", "Creative Writing", "Journalism"],
    "History": ["World History", "US History", "Government", "Economics"],
    "Languages": ["Spanish", "French", "German", "Latin", "Mandarin"],
    "Arts": ["Drawing", "Painting", "Choir", "Band", "Theater"],
    "Technology": ["Computer Science", "Robotics", "Web Design"],
}

FIRST_NAMES = [
    "Ava", "Liam", "Noah", "Emma", "Olivia", "Mason", "Sophia", "Lucas", "Mia", "Ethan",
    "Isabella", "Logan", "Amelia", "Elijah", "Harper", "James", "Evelyn", "Aiden", "Abigail",
    "Jackson", "Emily", "Carter", "Ella", "Sebastian", "Scarlett", "Mateo", "Grace", "Levi",
]
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Rodriguez",
    "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson", "Thomas", "Taylor",
    "Moore", "Jackson", "Martin", "Lee", "Perez", "Thompson", "White", "Harris", "Clark",
]


@dataclass(frozen=True)
class RosterSize:
    name: str
    student_count: int
    school_count: int


SIZES: dict[str, RosterSize] = {
    "small": RosterSize("small", student_count=15, school_count=3),
    "medium": RosterSize("medium", student_count=22, school_count=10),
    "large": RosterSize("large", student_count=30, school_count=50),
}


def semester_for(today: date) -> str:
    """Fall after June, Spring otherwise."""
    season = "Fall" if today.month > 6 else "Spring"
    return f"{season}-{today.year}"


def generate_roster(
    size: RosterSize,
    rng: random.Random | None = None,
    today: date | None = None,
) -> Iterator[list[str]]:
    """
    Yield roster rows (without header).

    Every student in grades 9-12 of every school is enrolled in
    CLASSES_PER_DAY distinct classes.
    """
    rng = rng or random.Random()
    semester = semester_for(today or date.today())
    subjects = list(CLASSES)

    for _ in range(size.school_count):
        school = f"{rng.choice(LAST_NAMES)} High School"
        for grade in range(9, 13):
            for _ in range(size.student_count):
                student = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"
                enrolled: set[tuple[str, str]] = set()
                while len(enrolled) < CLASSES_PER_DAY:
                    subject = rng.choice(subjects)
                    class_name = rng.choice(CLASSES[subject])
                    if (subject, class_name) in enrolled:
                        continue
                    enrolled.add((subject, class_name))

                    score = 0 if rng.randint(0, 100) < FAILURE_RATE else rng.randint(70, 100)
                    yield [school, semester, f"{grade}th-Grade", subject, class_name, student, str(score)]


def roster_csv(size: RosterSize, rng: random.Random | None = None, today: date | None = None) -> str:
    """Render a roster as CSV text, header included."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(HEADERS)
    writer.writerows(generate_roster(size, rng=rng, today=today))
    return out.getvalue()


def write_roster(path: str | Path, size: str = "small", seed: int | None = None) -> Path:
    """Write ``master-data-<size>.csv`` style roster to ``path``."""
    if size not in SIZES:
        raise ValueError(f"Unknown size {size!r}, expected one of {sorted(SIZES)}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = roster_csv(SIZES[size], rng=random.Random(seed))
    path.write_text(text, encoding="utf-8")

    logger.info("roster_written", path=str(path), size=size, rows=text.count("\n") - 1)
    return path
