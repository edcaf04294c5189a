import asyncio
import logging
from typing import Optional
from sqlalchemy import select, func, or_, true, false
from sqlalchemy.ext.asyncio import AsyncSession
from filtro_api.auth import Principal, UserPrincipal
from filtro_api.config import get_settings
from filtro_api.exceptions import ApiError, not_found
from filtro_api.models.clinical_study import ClinicalStudy
from filtro_api.models.intake_submission import IntakeSubmission, SubmissionCompany
from filtro_api.services.credential_service import strip_inline_credentials
from filtro_api.services.intake_normalizer import normalize_intake_payload
from filtro_api.services.study_matcher import derive_cross_center, find_matching_studies

logger = logging.getLogger(__name__)


def can_see_private(principal: Principal) -> bool:
    """Cross-center and debug data is for super_admin portal users only."""
    return isinstance(principal, UserPrincipal) and principal.is_super_admin


def _company_clause(company_code: Optional[str]):
    if not company_code:
        return false()
    members = select(SubmissionCompany.submission_id).where(
        SubmissionCompany.company_code == company_code.lower()
    )
    return IntakeSubmission.id.in_(members)


def visibility_clause(principal: Principal):
    """
    Row filter for portal reads:
      super_admin   -> everything
      company_admin -> submissions for its company
      company_user  -> its own external user id, else its company
    Machine clients are not portal actors.
    """
    if not isinstance(principal, UserPrincipal):
        raise ApiError(403, "forbidden_actor")
    if principal.role == "super_admin":
        return true()
    if principal.role == "company_admin":
        return _company_clause(principal.company_code)
    if principal.role == "company_user":
        if principal.external_user_id is not None:
            return IntakeSubmission.source_user_id == principal.external_user_id
        return _company_clause(principal.company_code)
    return false()


class SubmissionService:
    async def load_catalog(self, db: AsyncSession) -> list[dict]:
        """Snapshot of candidate studies; the matcher re-checks the exact recruiting status."""
        result = await db.execute(
            select(ClinicalStudy)
            .where(ClinicalStudy.estado_protocolo.ilike("%reclutando%"))
            .order_by(ClinicalStudy.id)
        )
        return [study.to_document() for study in result.scalars().all()]

    async def match(self, db: AsyncSession, normalized: dict) -> tuple[dict, dict, dict]:
        """
        Run the center-scoped and the all-centers pass concurrently over one catalog snapshot.
        Returns ``(match, match_cross_center, match_debug)``.
        """
        catalog = await self.load_catalog(db)
        centers = list(normalized.get("centro") or [])
        logger.debug("Matching against %d candidate studies (centers: %s)", len(catalog), centers)

        scoped, unscoped = await asyncio.gather(
            asyncio.to_thread(find_matching_studies, normalized, catalog, centers),
            asyncio.to_thread(find_matching_studies, normalized, catalog, []),
        )
        debug = {
            "current_centers": scoped.pop("debug"),
            "all_centers": unscoped.pop("debug"),
        }
        cross_center = derive_cross_center(scoped, unscoped, centers)
        return scoped, cross_center, debug

    async def ingest(self, db: AsyncSession, body: dict, principal: Principal) -> dict:
        raw_payload = strip_inline_credentials(body)
        normalized = normalize_intake_payload(raw_payload)
        match, cross_center, debug = await self.match(db, normalized)

        submission = IntakeSubmission(
            source=get_settings().webhook_source,
            source_user_id=normalized["user_id"],
            source_user_ref=normalized["user_ref"],
            company_codes=normalized["centro"],
            raw_payload=raw_payload,
            normalized=normalized,
            match=match,
            match_cross_center=cross_center,
            match_debug=debug,
            total_matches=match["total_matches"],
            companies=[SubmissionCompany(company_code=code) for code in dict.fromkeys(normalized["centro"])],
        )
        db.add(submission)
        # Single insert, committed before responding; failures surface as 5xx
        await db.commit()
        logger.info(
            "Stored submission %s from %s (matches: %d here, %d elsewhere)",
            submission.id, principal.subject, match["total_matches"], cross_center["total_other_centers"],
        )

        response = {"ok": True, "id": submission.id, "normalized": normalized, "match": match}
        if can_see_private(principal):
            response["matchCrossCenter"] = cross_center
        return response

    async def list_visible(
        self,
        db: AsyncSession,
        principal: Principal,
        limit: int,
        skip: int,
        only_with_match: Optional[bool] = None,
    ) -> dict:
        query = select(IntakeSubmission).where(visibility_clause(principal))
        if only_with_match is True:
            query = query.where(IntakeSubmission.total_matches > 0)
        elif only_with_match is False:
            query = query.where(
                or_(IntakeSubmission.total_matches == 0, IntakeSubmission.total_matches.is_(None))
            )

        total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
        query = query.order_by(IntakeSubmission.created_at.desc(), IntakeSubmission.id.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        private = can_see_private(principal)
        return {
            "total": total,
            "limit": limit,
            "skip": skip,
            "submissions": [s.to_document(include_private=private) for s in result.scalars().all()],
        }

    async def get_visible(self, db: AsyncSession, principal: Principal, submission_id: int) -> dict:
        result = await db.execute(
            select(IntakeSubmission).where(
                IntakeSubmission.id == submission_id, visibility_clause(principal)
            )
        )
        submission = result.scalar_one_or_none()
        if not submission:
            raise not_found("submission")
        return submission.to_document(include_private=can_see_private(principal))

    async def get_derivation(self, db: AsyncSession, submission_id: int) -> dict:
        submission = await db.get(IntakeSubmission, submission_id)
        if not submission:
            raise not_found("submission")
        return {
            "id": submission.id,
            "centro": (submission.normalized or {}).get("centro", []),
            "match": submission.match,
            "matchCrossCenter": submission.match_cross_center,
            "matchDebug": submission.match_debug,
        }


submission_service = SubmissionService()
