"""
AllocationJournalRepository - Intent log for non-atomic group payments.

One document per planned per-sale write:
1. Inserted as pending before the Ledger Store call
2. Marked applied (with the payment id) or failed (with the error) after
3. Rows still pending or failed are the ones to reconcile
"""

from typing import List, Optional
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from credit_ledger.models.allocation import AllocationIntent, IntentStatus


class AllocationJournalRepository:
    """Repository for allocation intents."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.allocation_intents

    async def record_intent(self, intent: AllocationIntent) -> AllocationIntent:
        """Persist a pending intent. Must complete before the payment write is issued."""
        doc = intent.model_dump(by_alias=True)
        doc["status"] = intent.status.value
        doc["payment_method"] = intent.payment_method.value
        await self.collection.insert_one(doc)
        return intent

    async def mark_applied(self, intent_id: str, payment_id: Optional[str]) -> bool:
        return await self._set_status(
            intent_id, IntentStatus.APPLIED, {"payment_id": payment_id, "error": None}
        )

    async def mark_failed(self, intent_id: str, error: str) -> bool:
        return await self._set_status(intent_id, IntentStatus.FAILED, {"error": error})

    async def list_unfinished(self, limit: int = 100) -> List[AllocationIntent]:
        """Intents that were never confirmed applied, oldest first."""
        docs = await self.collection.find({
            "status": {"$in": [IntentStatus.PENDING.value, IntentStatus.FAILED.value]}
        }).sort("created_at", 1).to_list(limit)
        return [AllocationIntent(**doc) for doc in docs]

    async def get_allocation(self, allocation_id: str) -> List[AllocationIntent]:
        """All intents of one allocation, in write order."""
        docs = await self.collection.find({
            "allocation_id": allocation_id
        }).sort("created_at", 1).to_list(None)
        return [AllocationIntent(**doc) for doc in docs]

    async def _set_status(self, intent_id: str, status: IntentStatus, fields: dict) -> bool:
        if not ObjectId.is_valid(intent_id):
            return False
        result = await self.collection.update_one(
            {"_id": ObjectId(intent_id)},
            {
                "$set": {
                    **fields,
                    "status": status.value,
                    "updated_at": datetime.now(timezone.utc),
                }
            }
        )
        return result.modified_count > 0
