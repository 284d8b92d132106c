"""Semi-private pairing engine.

Players in the same age category who want the same (day, time) are paired
into one shared session. Players without a partner wait in
``unpaired_semi_private`` until someone picks their slot.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.models import (
    PairingStatus,
    Registration,
    SemiPrivatePairing,
    UnpairedSemiPrivate,
    WaitlistStatus,
)
from sniperzone.services.capacity_service import CapacityLedger
from sniperzone.services.slot_catalog import PRIVATE_TIME_SLOTS, normalize_category
from sniperzone.utils.timezone import WEEKDAYS, today_local

logger = logging.getLogger(__name__)


@dataclass
class PartnerInfo:
    registration_id: int
    name: Optional[str]
    category: Optional[str]
    email: Optional[str] = None
    firebase_uid: Optional[str] = None

    def public(self) -> Dict[str, Any]:
        """Fields safe to show to the other family."""
        return {"registration_id": self.registration_id, "name": self.name, "category": self.category}


@dataclass
class PairingOutcome:
    """What happened to a player's pairing after a reschedule."""

    had_previous_partner: bool = False
    previous_partner: Optional[PartnerInfo] = None
    new_partner: Optional[PartnerInfo] = None
    pairing_id: Optional[int] = None

    @property
    def is_paired(self) -> bool:
        return self.new_partner is not None

    @property
    def is_waiting(self) -> bool:
        return self.new_partner is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "had_previous_partner": self.had_previous_partner,
            "previous_partner": self.previous_partner.public() if self.previous_partner else None,
            "new_partner": self.new_partner.public() if self.new_partner else None,
            "is_paired": self.is_paired,
            "is_waiting": self.is_waiting,
        }


class PartnerMatcher(Protocol):
    """Picks a waiting partner for a player at a slot."""

    async def find_partner(
        self, db: AsyncSession, registration: Registration, day: str, time_slot: str
    ) -> Optional[UnpairedSemiPrivate]:
        ...


class FirstWaitingMatcher:
    """Greedy matching: the longest-waiting compatible player wins.

    Ties on ``unpaired_since_date`` go to the lower waitlist id.
    """

    async def find_partner(
        self, db: AsyncSession, registration: Registration, day: str, time_slot: str
    ) -> Optional[UnpairedSemiPrivate]:
        for candidate in await waiting_at_slot(db, registration, day, time_slot):
            if await active_pairing_for(db, candidate.registration_id) is None:
                return candidate
            logger.warning(
                f"Waitlist entry for registration {candidate.registration_id} is 'waiting' "
                f"but holds an active pairing, skipping"
            )
        return None


async def waiting_in_category(db: AsyncSession, registration: Registration) -> List[UnpairedSemiPrivate]:
    """Other waiting players of the registration's category, oldest first."""
    result = await db.execute(
        select(UnpairedSemiPrivate)
        .where(
            UnpairedSemiPrivate.age_category == normalize_category(registration.age_category),
            UnpairedSemiPrivate.status == WaitlistStatus.WAITING,
            UnpairedSemiPrivate.registration_id != registration.id,
        )
        .order_by(UnpairedSemiPrivate.unpaired_since_date.asc(), UnpairedSemiPrivate.id.asc())
    )
    return list(result.scalars().all())


async def waiting_at_slot(
    db: AsyncSession, registration: Registration, day: str, time_slot: str
) -> List[UnpairedSemiPrivate]:
    return [entry for entry in await waiting_in_category(db, registration) if entry.prefers(day, time_slot)]


async def active_pairing_for(db: AsyncSession, registration_id: int) -> Optional[SemiPrivatePairing]:
    result = await db.execute(
        select(SemiPrivatePairing)
        .where(
            or_(
                SemiPrivatePairing.player_1_registration_id == registration_id,
                SemiPrivatePairing.player_2_registration_id == registration_id,
            ),
            SemiPrivatePairing.status == PairingStatus.ACTIVE,
        )
        .order_by(SemiPrivatePairing.id.desc())
    )
    return result.scalars().first()


class PairingEngine:
    """Pairs, dissolves and re-pairs semi-private players.

    Nothing here commits; the caller owns the transaction so a reschedule
    and its pairing changes land together.
    """

    def __init__(self, db: AsyncSession, matcher: Optional[PartnerMatcher] = None):
        self.db = db
        self.matcher = matcher or FirstWaitingMatcher()

    async def get_suggested_times(self, registration: Registration) -> List[Dict[str, Any]]:
        """Every (day, time) a waiting player of the same category would take."""
        suggestions = []
        for player in await waiting_in_category(self.db, registration):
            for day in player.preferred_days or []:
                for time_slot in player.preferred_time_slots or []:
                    suggestions.append({
                        "day": day,
                        "time": time_slot,
                        "partner_name": player.player_name,
                        "partner_category": player.age_category,
                        "unpaired_since": player.unpaired_since_date.isoformat(),
                    })
        return suggestions

    async def get_current_pairing(self, registration: Registration) -> Optional[Dict[str, Any]]:
        pairing = await active_pairing_for(self.db, registration.id)
        if pairing is None:
            return None
        partner = await self.db.get(Registration, pairing.partner_of(registration.id))
        return {
            "id": pairing.id,
            "partner_name": partner.player_name if partner else None,
            "partner_category": partner.age_category if partner else None,
            "scheduled_day": pairing.scheduled_day,
            "scheduled_time": pairing.scheduled_time,
            "paired_date": pairing.paired_date.isoformat() if pairing.paired_date else None,
        }

    async def find_waiting_partner(
        self, registration: Registration, day: str, time_slot: str
    ) -> Optional[UnpairedSemiPrivate]:
        return await self.matcher.find_partner(self.db, registration, day, time_slot)

    async def get_week_availability(self, registration: Registration) -> List[Dict[str, Any]]:
        """Seven-day grid of hourly slots with partner hints for one player."""
        occupied = await CapacityLedger(self.db).occupied_hourly_slots(exclude_registration_ids=[registration.id])
        waiting = await waiting_in_category(self.db, registration)

        grid = []
        for day in WEEKDAYS:
            slots = []
            for time_slot in PRIVATE_TIME_SLOTS:
                partner = next((w for w in waiting if w.prefers(day, time_slot)), None)
                slots.append({
                    "time": time_slot,
                    # A waiting partner holds their own slot but it stays joinable
                    "available": (day, time_slot) not in occupied or partner is not None,
                    "has_unpaired_partner": partner is not None,
                    "partner_name": partner.player_name if partner else None,
                    "is_current": day in registration.days and registration.time_slot == time_slot,
                    "priority": "high" if partner else "normal",
                })
            grid.append({"day": day, "slots": slots})
        return grid

    async def try_reschedule(
        self,
        registration: Registration,
        new_day: str,
        new_time: str,
        dissolved_by: Optional[str] = None,
    ) -> PairingOutcome:
        """
        Move a player to a new slot and re-pair them.

        Slot admission must already have passed. Steps: dissolve the current
        pairing, put the former partner back on the waitlist at the old slot,
        then pair with the first waiting match or wait at the new slot.
        """
        outcome = PairingOutcome()
        today = today_local()

        existing = await active_pairing_for(self.db, registration.id)
        if existing is not None:
            outcome.had_previous_partner = True
            existing.status = PairingStatus.DISSOLVED
            existing.dissolved_date = today
            existing.dissolved_reason = f"Player rescheduled to {new_day} at {new_time}"
            existing.dissolved_by = dissolved_by

            partner_reg = await self.db.get(Registration, existing.partner_of(registration.id))
            if partner_reg is not None:
                outcome.previous_partner = _partner_info(partner_reg)
                await self._upsert_waiting(partner_reg, existing.scheduled_day, existing.scheduled_time, today)
            logger.info(
                f"💔 Dissolved pairing {existing.id} ({existing.scheduled_day} {existing.scheduled_time}) "
                f"after registration {registration.id} moved"
            )

        partner_entry = await self.find_waiting_partner(registration, new_day, new_time)
        if partner_entry is not None:
            pairing = SemiPrivatePairing(
                player_1_registration_id=registration.id,
                player_2_registration_id=partner_entry.registration_id,
                scheduled_day=new_day,
                scheduled_time=new_time,
                status=PairingStatus.ACTIVE,
                paired_date=today,
            )
            self.db.add(pairing)

            partner_entry.status = WaitlistStatus.PAIRED
            partner_entry.paired_date = today
            own_entry = await self._waitlist_entry(registration.id)
            if own_entry is not None:
                own_entry.status = WaitlistStatus.PAIRED
                own_entry.paired_date = today
            await self.db.flush()

            partner_reg = await self.db.get(Registration, partner_entry.registration_id)
            outcome.new_partner = (
                _partner_info(partner_reg)
                if partner_reg is not None
                else PartnerInfo(partner_entry.registration_id, partner_entry.player_name, partner_entry.age_category)
            )
            outcome.pairing_id = pairing.id
            logger.info(
                f"🤝 Paired registrations {registration.id} and {partner_entry.registration_id} "
                f"on {new_day} {new_time}"
            )
        else:
            await self._upsert_waiting(registration, new_day, new_time, today)
            logger.info(f"⏳ Registration {registration.id} waiting for a partner on {new_day} {new_time}")

        await self.db.flush()
        return outcome

    async def _waitlist_entry(self, registration_id: int) -> Optional[UnpairedSemiPrivate]:
        result = await self.db.execute(
            select(UnpairedSemiPrivate).where(UnpairedSemiPrivate.registration_id == registration_id)
        )
        return result.scalar_one_or_none()

    async def _upsert_waiting(self, registration: Registration, day: str, time_slot: str, since) -> UnpairedSemiPrivate:
        entry = await self._waitlist_entry(registration.id)
        if entry is None:
            entry = UnpairedSemiPrivate(registration_id=registration.id)
            self.db.add(entry)
        entry.player_name = registration.player_name
        entry.age_category = normalize_category(registration.age_category)
        entry.preferred_days = [day]
        entry.preferred_time_slots = [time_slot]
        entry.parent_email = registration.parent_email
        entry.parent_name = registration.parent_name
        entry.status = WaitlistStatus.WAITING
        entry.unpaired_since_date = since
        entry.paired_date = None
        return entry


async def list_unpaired(db: AsyncSession, age_category: Optional[str] = None) -> List[UnpairedSemiPrivate]:
    """Waiting players, longest-waiting first."""
    query = select(UnpairedSemiPrivate).where(UnpairedSemiPrivate.status == WaitlistStatus.WAITING)
    if age_category:
        query = query.where(UnpairedSemiPrivate.age_category == normalize_category(age_category))
    result = await db.execute(
        query.order_by(UnpairedSemiPrivate.unpaired_since_date.asc(), UnpairedSemiPrivate.id.asc())
    )
    return list(result.scalars().all())


def _partner_info(registration: Registration) -> PartnerInfo:
    return PartnerInfo(
        registration_id=registration.id,
        name=registration.player_name,
        category=registration.age_category,
        email=registration.parent_email,
        firebase_uid=registration.firebase_uid,
    )
