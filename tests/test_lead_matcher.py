"""
Tests for lead matching by phone and placeholder lead creation.
"""
import pytest
from sqlalchemy import func, select

from relay.models.lead import Lead, LeadV2
from relay.models.phone_lead_mapping import PhoneLeadMapping
from relay.services.lead_matcher import (
    candidate_phones,
    match_or_create_lead,
    remember_phone_mapping,
)
from relay.services.pipeline_targets import LEGACY_TARGET, V2_TARGET


class TestCandidatePhones:
    def test_normalizes_and_dedupes(self):
        assert candidate_phones(["(512) 555-9876", "+15125559876", None, ""]) == [
            ("(512) 555-9876", "+15125559876"),
        ]

    def test_keeps_priority_order(self):
        assert candidate_phones(["+15125550100", "+15125559876"]) == [
            ("+15125550100", "+15125550100"), ("+15125559876", "+15125559876"),
        ]

    def test_local_number_kept_raw(self):
        assert candidate_phones(["555-1234"]) == [("555-1234", "555-1234")]


class TestMatchOrCreate:
    @pytest.mark.asyncio
    async def test_matches_existing_lead_by_phone(self, db):
        lead = Lead(first_name="Dana", phone_e164="+15125559876", source="CINC")
        db.add(lead)
        await db.commit()

        match = await match_or_create_lead(db, LEGACY_TARGET, ["512-555-9876"], "retell_call")
        assert match == {
            "lead_id": lead.id, "created": False,
            "matched_phone": "+15125559876", "matched_raw": "512-555-9876",
        }

    @pytest.mark.asyncio
    async def test_falls_through_to_second_phone(self, db):
        lead = Lead(first_name="Dana", phone_e164="+15125550100")
        db.add(lead)
        await db.commit()

        match = await match_or_create_lead(
            db, LEGACY_TARGET, ["+15125559876", "+15125550100"], "retell_call",
        )
        assert match["lead_id"] == lead.id
        assert match["matched_phone"] == "+15125550100"

    @pytest.mark.asyncio
    async def test_phone_mapping_wins_on_legacy(self, db):
        mapped = Lead(first_name="Mapped")
        db.add(mapped)
        await db.flush()
        db.add(PhoneLeadMapping(phone_e164="+15125559876", lead_id=mapped.id))
        db.add(Lead(first_name="Direct", phone_e164="+15125559876"))
        await db.commit()

        match = await match_or_create_lead(db, LEGACY_TARGET, ["+15125559876"], "retell_call")
        assert match["lead_id"] == mapped.id

    @pytest.mark.asyncio
    async def test_creates_placeholder_when_unknown(self, db):
        match = await match_or_create_lead(db, LEGACY_TARGET, ["(512) 555-9876"], "retell_call")
        assert match["created"] is True
        assert match["matched_raw"] == "(512) 555-9876"

        lead = await db.get(Lead, match["lead_id"])
        assert lead.first_name == "Unknown"
        assert lead.last_name == "Caller"
        assert lead.status == "contacted"
        assert lead.source == "retell_call"
        assert lead.phone_e164 == "+15125559876"
        assert lead.phone_raw == "(512) 555-9876"
        assert lead.last_contacted_at is not None

    @pytest.mark.asyncio
    async def test_v2_writes_v2_table(self, db):
        match = await match_or_create_lead(db, V2_TARGET, ["+15125559876"], "retell_call")
        await db.commit()

        assert await db.get(LeadV2, match["lead_id"]) is not None
        count = (await db.execute(select(func.count()).select_from(Lead))).scalar()
        assert count == 0

    @pytest.mark.asyncio
    async def test_no_phones_leaves_conversation_unlinked(self, db):
        match = await match_or_create_lead(db, LEGACY_TARGET, [None, ""], "retell_call")
        assert match == {"lead_id": None, "created": False, "matched_phone": None, "matched_raw": None}

    @pytest.mark.asyncio
    async def test_local_number_lead_has_no_canonical_phone(self, db):
        match = await match_or_create_lead(db, LEGACY_TARGET, ["555-1234"], "retell_call")

        lead = await db.get(Lead, match["lead_id"])
        assert lead.phone_raw == "555-1234"
        assert lead.phone_e164 is None


class TestRememberPhoneMapping:
    @pytest.mark.asyncio
    async def test_creates_mapping(self, db):
        lead = Lead(first_name="Unknown", last_name="Caller")
        db.add(lead)
        await db.commit()

        await remember_phone_mapping(db, "+15125559876", lead.id, "(512) 555-9876")
        mapping = await db.get(PhoneLeadMapping, "+15125559876")
        assert mapping.lead_id == lead.id
        assert mapping.phone_raw == "(512) 555-9876"
        assert mapping.lead_name == "Unknown Caller"

    @pytest.mark.asyncio
    async def test_existing_mapping_untouched(self, db):
        first = Lead(first_name="First")
        second = Lead(first_name="Second")
        db.add_all([first, second])
        await db.flush()
        db.add(PhoneLeadMapping(phone_e164="+15125559876", lead_id=first.id))
        await db.commit()

        await remember_phone_mapping(db, "+15125559876", second.id)
        mapping = await db.get(PhoneLeadMapping, "+15125559876")
        assert mapping.lead_id == first.id
