from dataclasses import dataclass, asdict
from typing import Optional
import threading
import time


@dataclass
class ConceptMastery:
    pupil_id: str
    concept: str
    total_uses: int = 0
    correct_uses: int = 0
    streak: int = 0
    mastery_status: str = "new"   # new | practicing | mastered
    lesson_introduced: Optional[int] = None
    updated_at: float = 0.0

    @property
    def score(self) -> float:
        return (self.correct_uses / self.total_uses * 100) if self.total_uses else 0.0

    def to_dict(self):
        d = asdict(self)
        d["score"] = round(self.score)
        return d


def mastery_status_for(total_uses: int, correct_uses: int) -> str:
    """mastered: >= 85% over at least 3 uses; practicing: >= 65%; otherwise new."""
    if not total_uses:
        return "new"
    acc = correct_uses / total_uses * 100
    if total_uses >= 3 and acc >= 85:
        return "mastered"
    if acc >= 65:
        return "practicing"
    return "new"


class MasteryStore:
    def get(self, pupil_id: str, concept: str) -> Optional[ConceptMastery]:
        raise NotImplementedError

    def upsert(self, state: ConceptMastery) -> ConceptMastery:
        raise NotImplementedError

    def list_pupil(self, pupil_id: str) -> list[ConceptMastery]:
        raise NotImplementedError


class InMemoryMasteryStore(MasteryStore):
    def __init__(self):
        self._data = {}
        self._lock = threading.Lock()

    def _key(self, pupil_id: str, concept: str):
        return f"{pupil_id}::{concept}"

    def get(self, pupil_id: str, concept: str) -> Optional[ConceptMastery]:
        return self._data.get(self._key(pupil_id, concept))

    def upsert(self, state: ConceptMastery) -> ConceptMastery:
        state.updated_at = time.time()
        with self._lock:
            self._data[self._key(state.pupil_id, state.concept)] = state
        return state

    def list_pupil(self, pupil_id):
        prefix = f"{pupil_id}::"
        return sorted(
            (v for k, v in self._data.items() if k.startswith(prefix)),
            key=lambda s: s.concept,
        )


class SupabaseMasteryStore(MasteryStore):
    def __init__(self, supabase_client):
        self.sb = supabase_client

    @staticmethod
    def _from_row(d: dict) -> ConceptMastery:
        return ConceptMastery(
            pupil_id=d["pupil_id"],
            concept=d["concept"],
            total_uses=int(d.get("total_uses") or 0),
            correct_uses=int(d.get("correct_uses") or 0),
            streak=int(d.get("streak") or 0),
            mastery_status=d.get("mastery_status") or "new",
            lesson_introduced=d.get("lesson_introduced"),
            updated_at=float(time.time()),
        )

    def get(self, pupil_id: str, concept: str) -> Optional[ConceptMastery]:
        r = (
            self.sb.table("concept_mastery")
            .select("*")
            .eq("pupil_id", pupil_id)
            .eq("concept", concept)
            .maybe_single()
            .execute()
        )
        data = getattr(r, "data", None)
        if not data:
            return None
        return self._from_row(data)

    def upsert(self, state: ConceptMastery) -> ConceptMastery:
        payload = {
            "pupil_id": state.pupil_id,
            "concept": state.concept,
            "total_uses": state.total_uses,
            "correct_uses": state.correct_uses,
            "streak": state.streak,
            "mastery_status": state.mastery_status,
            "lesson_introduced": state.lesson_introduced,
        }
        (
            self.sb.table("concept_mastery")
            .upsert(payload, on_conflict="pupil_id,concept")
            .execute()
        )
        return state

    def list_pupil(self, pupil_id):
        r = (
            self.sb.table("concept_mastery")
            .select("*")
            .eq("pupil_id", pupil_id)
            .order("concept")
            .execute()
        )
        return [self._from_row(d) for d in (getattr(r, "data", None) or [])]


MASTERY_STORE = InMemoryMasteryStore()


def get_mastery_store(settings=None) -> MasteryStore:
    if settings is None:
        from app.core.config import get_settings
        settings = get_settings()
    from app.services.pwp_session_store import store_backend
    if store_backend(settings) == "memory":
        return MASTERY_STORE

    from app.core.deps import get_supabase_client
    return SupabaseMasteryStore(get_supabase_client())


def update_concept_mastery(store: MasteryStore, pupil_id: str, concepts, is_correct: bool,
                           lesson_number: Optional[int] = None) -> list[ConceptMastery]:
    """Count one use of every concept in a judged formula attempt."""
    out = []
    for concept in dict.fromkeys(concepts):
        state = store.get(pupil_id, concept)
        if not state:
            state = ConceptMastery(pupil_id=pupil_id, concept=concept, lesson_introduced=lesson_number)

        state.total_uses += 1
        if is_correct:
            state.correct_uses += 1
            state.streak += 1
        else:
            state.streak = 0

        state.mastery_status = mastery_status_for(state.total_uses, state.correct_uses)
        out.append(store.upsert(state))
    return out
