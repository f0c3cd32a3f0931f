# clubportal/seed_db.py
import datetime
import logging

from .database import SessionLocal, engine
from . import models, utils
from .models import ClubCategory, EventStatus, EventType, MembershipRole, RegistrationStatus, UserRole

logger = logging.getLogger(__name__)

# --- MOCK DATA ---
MOCK_USERS = [
    {"id": "admin-1", "email": "admin@uni.edu", "name": "System Administrator", "role": UserRole.ADMIN},
    {"id": "teacher-1", "email": "turing@uni.edu", "name": "Alan Turing", "role": UserRole.TEACHER, "department": "Computer Science"},
    {"id": "teacher-2", "email": "holiday@uni.edu", "name": "Billie Holiday", "role": UserRole.TEACHER, "department": "Music"},
    {"id": "student-1", "email": "ada@uni.edu", "name": "Ada Lovelace", "role": UserRole.STUDENT, "student_id": "S-1001"},
    {"id": "student-2", "email": "grace@uni.edu", "name": "Grace Hopper", "role": UserRole.STUDENT, "student_id": "S-1002"},
    {"id": "student-3", "email": "miles@uni.edu", "name": "Miles Davis", "role": UserRole.STUDENT, "student_id": "S-1003"},
]

MOCK_CLUBS = [
    {
        "id": "club-1",
        "name": "Tech & Coding Society",
        "description": "We build cool stuff with code. Join us for hackathons, workshops, and pizza nights.",
        "category": ClubCategory.TECHNICAL,
        "coordinator_id": "teacher-1",
        "contact_email": "tech@university.edu",
        "meeting_schedule": "Wednesdays 17:00",
        "members": [("student-1", MembershipRole.LEADER), ("student-2", MembershipRole.MEMBER)],
    },
    {
        "id": "club-2",
        "name": "University Jazz Band",
        "description": "Smooth jazz and good vibes. We perform every Tuesday at the student center.",
        "category": ClubCategory.MUSIC,
        "coordinator_id": "teacher-2",
        "contact_email": "jazz@university.edu",
        "meeting_schedule": "Tuesdays 19:00",
        "members": [("student-3", MembershipRole.MEMBER)],
    },
]

MOCK_EVENTS = [
    {
        "title": "Intro to Python Workshop",
        "description": "Learn the basics of Python programming. No prior experience needed!",
        "club_id": "club-1",
        "organizer_id": "teacher-1",
        "event_type": EventType.WORKSHOP,
        "days_ahead": 14,
        "start_time": "10:00",
        "end_time": "12:00",
        "venue": "Room 304",
        "max_participants": 30,
        "status": EventStatus.UPCOMING,
        "registrations": ["student-1", "student-2"],
    },
    {
        "title": "Jazz Night Live",
        "description": "Live performance by the University Jazz Band. Free entry!",
        "club_id": "club-2",
        "organizer_id": "teacher-2",
        "event_type": EventType.PERFORMANCE,
        "days_ahead": -7,
        "start_time": "18:00",
        "end_time": "20:00",
        "venue": "Student Center",
        "max_participants": 0,
        "status": EventStatus.COMPLETED,
        "registrations": ["student-2", "student-3"],
    },
]


def seed():
    logger.info("Seeding database...")

    # 1. Reset Tables (Drop & Create)
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    try:
        hashed_pwd = utils.hash_password("password123")
        now = models.utcnow()

        # --- 2. Create USERS ---
        for user_data in MOCK_USERS:
            db.add(models.User(
                id=user_data["id"],
                email=user_data["email"],
                hashed_password=hashed_pwd,
                name=user_data["name"],
                department=user_data.get("department"),
                student_id=user_data.get("student_id"),
                role=user_data["role"],
                is_active=True,
            ))
        db.commit()  # Commit users so IDs exist for clubs

        # --- 3. Create CLUBS ---
        for club_data in MOCK_CLUBS:
            club = models.Club(
                id=club_data["id"],
                slug=models.generate_slug(club_data["name"]),
                name=club_data["name"],
                description=club_data["description"],
                category=club_data["category"],
                coordinator_id=club_data["coordinator_id"],
                contact_email=club_data["contact_email"],
                meeting_schedule=club_data["meeting_schedule"],
            )
            for user_id, role in club_data["members"]:
                club.members.append(models.ClubMembership(user_id=user_id, role=role, joined_at=now))
            db.add(club)
        db.commit()

        # --- 4. Create EVENTS ---
        for event_data in MOCK_EVENTS:
            event_date = now.date() + datetime.timedelta(days=event_data["days_ahead"])
            event = models.Event(
                slug=models.generate_slug(f"{event_data['title']} {event_date}"),
                title=event_data["title"],
                description=event_data["description"],
                club_id=event_data["club_id"],
                organizer_id=event_data["organizer_id"],
                event_type=event_data["event_type"],
                event_date=event_date,
                start_time=event_data["start_time"],
                end_time=event_data["end_time"],
                venue=event_data["venue"],
                max_participants=event_data["max_participants"],
                registration_deadline=datetime.datetime.combine(event_date, datetime.time(0, 0)),
                status=event_data["status"],
            )
            for user_id in event_data["registrations"]:
                event.registrations.append(models.EventRegistration(
                    user_id=user_id,
                    registration_date=now,
                    status=RegistrationStatus.REGISTERED,
                ))
            db.add(event)

        db.commit()
        logger.info("Seeding complete")

    except Exception as e:
        logger.error("Seeding failed: %s", e)
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    seed()
