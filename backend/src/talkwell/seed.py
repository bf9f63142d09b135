from talkwell.db.session import AsyncSessionLocal
from talkwell.db.models import Consultation, MedicalCondition, PatientProfile
from talkwell.consultation.summarizer import ASSESSMENT_PLACEHOLDER, DISCLAIMER
from datetime import date
from sqlalchemy import select
import logging

logger = logging.getLogger("seed")

# Demo profiles so the consultation screen has history to ground on
SAMPLE_PATIENTS = [
    {
        "profile": {
            "first_name": "Maria",
            "last_name": "Gonzalez",
            "date_of_birth": date(1984, 3, 9),
            "gender": "female",
            "city": "Austin",
            "state": "TX",
            "zip_code": "78701",
            "preferred_language": "Spanish",
            "emergency_contact_name": "Luis Gonzalez",
            "emergency_contact_relationship": "husband",
        },
        "conditions": [
            {"condition_name": "Migraine", "severity": "moderate", "onset_date": date(2012, 8, 1)},
            {"condition_name": "Iron deficiency anemia", "severity": "mild", "status": "resolved"},
        ],
        "consultations": [
            {
                "summary": "Voice consultation regarding: headaches after screen work",
                "symptoms": "throbbing headache; light sensitivity",
                "follow_up": "Recommended to contact local healthcare providers in Austin, TX",
                "duration_seconds": 312,
            },
        ],
    },
    {
        "profile": {
            "first_name": "Daniel",
            "last_name": "Okafor",
            "date_of_birth": date(1957, 12, 2),
            "gender": "male",
            "city": "Columbus",
            "state": "OH",
            "communication_preference": "phone",
        },
        "conditions": [
            {"condition_name": "Type 2 diabetes", "severity": "moderate", "onset_date": date(2009, 5, 14)},
            {"condition_name": "Hypertension", "severity": "mild"},
        ],
        "consultations": [],
    },
    {
        "profile": {
            "first_name": "Priya",
            "last_name": "Raman",
            "date_of_birth": date(1999, 7, 30),
            "gender": "female",
        },
        "conditions": [
            {"condition_name": "Asthma", "severity": "mild", "description": "Exercise induced"},
        ],
        "consultations": [],
    },
]

async def seed_if_empty():
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(PatientProfile).limit(1))
        if result.scalars().first():
            logger.info("Seed: patients already present, skipping")
            return
        for sample in SAMPLE_PATIENTS:
            patient = PatientProfile(**sample["profile"])
            patient.conditions = [MedicalCondition(**c) for c in sample["conditions"]]
            patient.consultations = [
                Consultation(assessment=ASSESSMENT_PLACEHOLDER, disclaimer=DISCLAIMER, **c)
                for c in sample["consultations"]
            ]
            session.add(patient)
        await session.commit()
        logger.info("Seed: inserted %d sample patients", len(SAMPLE_PATIENTS))
