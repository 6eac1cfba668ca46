from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from editorial.core.clock import Clock, IdGenerator, SystemClock, UuidGenerator
from editorial.core.config import AppConfig, WorkflowConfig
from editorial.core.errors import InvalidTransition, NotFound, StaleSubmission, ValidationError, WorkflowError
from editorial.core.locks import SubmissionLockRegistry
from editorial.core.role_matrix import REVIEWER_ROLE, can_perform_action
from editorial.models.assignment import (
    AssignmentResult,
    RecommendedReviewer,
    ReviewerCandidate,
    ReviewerCriteria,
    WorkflowStepCounts,
)
from editorial.models.reviews import Review, ReviewStatus
from editorial.models.submission import SYSTEM_ACTOR, Article
from editorial.models.workflow import WorkflowStatus
from editorial.services.editorial_service import EditorialService
from editorial.services.notification_service import BestEffortNotifier
from editorial.services.repository import WorkflowRepository
from editorial.services.reviewer_scoring import ReviewerScoringService, rank_candidates

logger = logging.getLogger(__name__)

NEW_REVIEWER_ID_PREFIX = "new_"


def _assignment_lock_key(article_id: str) -> str:
    # 与状态流转锁（submission_id）分开，_finalize 内部还要再拿状态锁
    return f"reviewer-assignment:{article_id}"


def select_reviewers(
    ranked: Sequence[ReviewerCandidate],
    target: int,
    *,
    recommended_cap: int,
    threshold: float,
) -> List[ReviewerCandidate]:
    """
    两轮选人：

    1) 按排名优先选作者推荐的候选人（最多 recommended_cap 位，且加权分 >= threshold）；
    2) 剩余名额从完整排名中依次补齐（不区分来源，跳过已选）。
    """
    selected: List[ReviewerCandidate] = []
    recommended_taken = 0
    for candidate in ranked:
        if len(selected) >= target:
            break
        if candidate.is_recommended and recommended_taken < recommended_cap and candidate.final_score >= threshold:
            selected.append(candidate)
            recommended_taken += 1

    chosen = {c.id for c in selected}
    for candidate in ranked:
        if len(selected) >= target:
            break
        if candidate.id in chosen:
            continue
        selected.append(candidate)
        chosen.add(candidate.id)
    return selected


def route_to_under_review(current: str) -> List[str]:
    """
    分配审稿人后需要走到 under_review 的流转路径；无合法路径时抛 InvalidTransition。
    """
    if current == WorkflowStatus.UNDER_REVIEW.value:
        return []
    if current == WorkflowStatus.REVIEWER_ASSIGNMENT.value:
        return [WorkflowStatus.UNDER_REVIEW.value]
    if current == WorkflowStatus.ASSOCIATE_EDITOR_REVIEW.value:
        return [WorkflowStatus.REVIEWER_ASSIGNMENT.value, WorkflowStatus.UNDER_REVIEW.value]
    raise InvalidTransition(current, WorkflowStatus.UNDER_REVIEW.value, WorkflowStatus.allowed_next(current))


class ReviewerAssignmentService:
    """
    审稿人分配编排（作者推荐 + 系统发现）。

    中文注释（五步协议，每一步的数量都记录在 AssignmentResult.workflow 中）：
    1) 读取作者推荐审稿人；
    2) 逐个校验：邮箱对应的活跃 reviewer 用户按系统内评分，否则按“新审稿人”启发式评分；
    3) 系统内检索合格审稿人（排除作者、已校验的推荐人、编辑指定的利益冲突、已分配者）；
    4) 合并排序，推荐人分数乘以加权系数（默认 1.2）；
    5) 选人：先推荐（最多 2 位、阈值 0.6），再按排名补齐到目标人数（默认 3）。

    提交阶段是“至少部分成功”语义：单个候选人失败只记入 errors，不回滚已成功的分配。
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        editorial: EditorialService,
        scoring: ReviewerScoringService,
        notifier: BestEffortNotifier,
        *,
        config: Optional[WorkflowConfig] = None,
        app_config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        token_signer: Optional[Callable[[str], str]] = None,
        locks: Optional[SubmissionLockRegistry] = None,
    ) -> None:
        self._repo = repository
        self._editorial = editorial
        self._scoring = scoring
        self._notifier = notifier
        self._config = config or WorkflowConfig.from_env()
        self._app_config = app_config or AppConfig.from_env()
        self._clock = clock or SystemClock()
        self._ids = ids or UuidGenerator()
        # 外部邀请 token：默认用随机 id；接入 EmailService.create_token 后为带时效的签名 token
        self._token_signer = token_signer
        # 同一稿件的分配串行化：从读取已分配名单到写回 reviewer_ids 必须在同一临界区内
        self._locks = locks or SubmissionLockRegistry()

    async def get_recommended_reviewers(self, article_id: str) -> List[RecommendedReviewer]:
        return await self._repo.list_recommended_reviewers(article_id)

    async def assign_reviewers(
        self,
        article_id: str,
        editor_id: str,
        reviewer_ids: Optional[Iterable[str]] = None,
        *,
        deadline: Optional[datetime] = None,
        use_recommendations: bool = True,
    ) -> AssignmentResult:
        ids = [str(r) for r in (reviewer_ids or []) if str(r or "").strip()]
        if use_recommendations and not ids:
            return await self.assign_reviewers_with_recommendations(article_id, editor_id, deadline=deadline)
        return await self.perform_direct_assignment(article_id, ids, editor_id, deadline=deadline)

    async def assign_reviewers_with_recommendations(
        self,
        article_id: str,
        editor_id: str,
        *,
        target_count: Optional[int] = None,
        deadline: Optional[datetime] = None,
        exclude_conflicts: Iterable[str] = (),
    ) -> AssignmentResult:
        async with self._locks.hold(_assignment_lock_key(article_id)):
            return await self._assign_with_recommendations(
                article_id,
                editor_id,
                target_count=target_count,
                deadline=deadline,
                exclude_conflicts=exclude_conflicts,
            )

    async def perform_direct_assignment(
        self,
        article_id: str,
        reviewer_ids: Iterable[str],
        editor_id: str,
        *,
        deadline: Optional[datetime] = None,
    ) -> AssignmentResult:
        """
        编辑显式指定审稿人：逐个校验（角色、非作者、未重复、工作量未满），
        不合格的记为逐条错误并跳过，合格的走与自动分配相同的提交流程。
        """
        async with self._locks.hold(_assignment_lock_key(article_id)):
            return await self._assign_direct(article_id, list(reviewer_ids), editor_id, deadline=deadline)

    # --- internals ---
    async def _assign_with_recommendations(
        self,
        article_id: str,
        editor_id: str,
        *,
        target_count: Optional[int],
        deadline: Optional[datetime],
        exclude_conflicts: Iterable[str],
    ) -> AssignmentResult:
        config = self._config
        target = int(target_count or config.target_reviewers)
        article = await self._load_article(article_id)
        await self._require_assigning_editor(editor_id)
        submission = await self._editorial.get_submission_for_article(article_id)
        route = route_to_under_review(submission.status)
        review_deadline = deadline or self._default_deadline()
        conflicts = [str(x) for x in exclude_conflicts if x]
        counts = WorkflowStepCounts()

        # Step 1
        recommended = await self._repo.list_recommended_reviewers(article_id)
        counts.recommended_retrieved = len(recommended)

        # Step 2
        validated = await self._validate_recommended(recommended, article, conflicts)
        counts.recommended_validated = len(validated)

        # Step 3
        existing_ids = [c.id for c in validated if c.source == "recommended_existing"]
        exclude = list(dict.fromkeys([article.author_id, *existing_ids, *conflicts, *article.reviewer_ids]))
        criteria = ReviewerCriteria(
            expertise=list(article.keywords),
            exclude_conflicts=exclude,
            min_quality_score=config.min_reviewer_quality,
            limit=config.candidate_limit,
        )
        system_candidates = await self._scoring.find_suitable_reviewers(article, criteria, exclude)
        counts.system_candidates = len(system_candidates)

        # Step 4
        boosted = [
            c.model_copy(update={"final_score": round(c.score * config.recommended_boost, 4)}) for c in validated
        ]
        ranked = rank_candidates([*boosted, *system_candidates])
        counts.total_ranked = len(ranked)

        # Step 5
        selected = select_reviewers(
            ranked,
            target,
            recommended_cap=config.recommended_cap,
            threshold=config.recommended_threshold,
        )
        counts.final_selected = len(selected)
        logger.info(
            "[ReviewerAssignment] article=%s retrieved=%s validated=%s system=%s ranked=%s selected=%s",
            article_id,
            counts.recommended_retrieved,
            counts.recommended_validated,
            counts.system_candidates,
            counts.total_ranked,
            counts.final_selected,
        )

        result = AssignmentResult(workflow=counts, selected=selected)
        recommended_by_id = {r.id: r for r in recommended}
        for candidate in selected:
            try:
                if candidate.source == "recommended_new":
                    rec = recommended_by_id.get(candidate.recommended_id or "")
                    if rec is None:
                        raise NotFound("Recommended reviewer not found")
                    await self._invite_new_reviewer(rec, article, review_deadline)
                    result.invited_reviewers.append(candidate.id)
                    result.recommended_used += 1
                else:
                    await self._assign_existing_reviewer(candidate.id, article, editor_id, review_deadline)
                    result.assigned_reviewers.append(candidate.id)
                    if candidate.source == "recommended_existing":
                        result.recommended_used += 1
                    else:
                        result.system_found += 1
            except WorkflowError as e:
                result.errors.append(f"Failed to assign reviewer {candidate.name or candidate.id}: {e.detail}")
            except Exception as e:
                logger.warning("[ReviewerAssignment] assign %s failed: %s", candidate.id, e)
                result.errors.append(f"Failed to assign reviewer {candidate.name or candidate.id}: {e}")

        await self._finalize(article, submission.id, route, result, editor_id)
        result.success = bool(result.assigned_reviewers or result.invited_reviewers)
        return result

    async def _assign_direct(
        self,
        article_id: str,
        reviewer_ids: Sequence[str],
        editor_id: str,
        *,
        deadline: Optional[datetime],
    ) -> AssignmentResult:
        article = await self._load_article(article_id)
        await self._require_assigning_editor(editor_id)
        submission = await self._editorial.get_submission_for_article(article_id)
        route = route_to_under_review(submission.status)
        review_deadline = deadline or self._default_deadline()

        result = AssignmentResult()
        for reviewer_id in dict.fromkeys(str(r) for r in reviewer_ids):
            try:
                reviewer = await self._repo.get_user(reviewer_id)
                if reviewer is None or reviewer.role != REVIEWER_ROLE or not reviewer.is_active:
                    result.errors.append(f"Invalid reviewer: {reviewer_id}")
                    continue
                if reviewer.id == article.author_id:
                    result.errors.append(f"Cannot assign author as reviewer: {reviewer.display_name}")
                    continue
                if reviewer.id in article.reviewer_ids or reviewer.id in result.assigned_reviewers:
                    result.errors.append(f"Reviewer {reviewer.display_name} is already assigned")
                    continue
                await self._assign_existing_reviewer(reviewer.id, article, editor_id, review_deadline)
                result.assigned_reviewers.append(reviewer.id)
            except WorkflowError as e:
                result.errors.append(str(e.detail))
            except Exception as e:
                logger.warning("[ReviewerAssignment] direct assign %s failed: %s", reviewer_id, e)
                result.errors.append(f"Failed to assign reviewer {reviewer_id}: {e}")

        await self._finalize(article, submission.id, route, result, editor_id)
        result.success = bool(result.assigned_reviewers)
        return result

    async def _load_article(self, article_id: str) -> Article:
        article = await self._repo.get_article(article_id)
        if article is None:
            raise NotFound("Article not found")
        return article

    async def _require_assigning_editor(self, editor_id: str) -> None:
        if editor_id == SYSTEM_ACTOR:
            return
        editor = await self._repo.get_user(editor_id)
        if editor is None or not editor.is_active or not can_perform_action(action="reviewer:assign", roles=editor.role):
            raise ValidationError("Invalid editor or insufficient permissions")

    def _default_deadline(self) -> datetime:
        return self._clock.now() + timedelta(days=self._config.review_deadline_days)

    async def _validate_recommended(
        self,
        recommended: Sequence[RecommendedReviewer],
        article: Article,
        conflicts: Sequence[str],
    ) -> List[ReviewerCandidate]:
        validated: dict[str, ReviewerCandidate] = {}
        blocked = {article.author_id, *conflicts, *article.reviewer_ids}
        for rec in recommended:
            if rec.status == "declined":
                continue
            user = await self._repo.get_user_by_email(rec.email)
            if user is not None and user.role == REVIEWER_ROLE and user.is_active:
                if user.id in blocked:
                    logger.info("[ReviewerAssignment] skip recommended %s (conflict or already assigned)", user.id)
                    continue
                profile = await self._repo.get_reviewer_profile(user.id)
                score = self._scoring.score_existing_reviewer(profile, article)
                candidate = ReviewerCandidate(
                    id=user.id,
                    email=user.email,
                    name=user.display_name,
                    score=score,
                    final_score=score,
                    current_load=profile.current_review_load if profile else 0,
                    source="recommended_existing",
                    recommended_id=rec.id,
                )
            else:
                score = self._scoring.score_new_recommended_reviewer(rec, article)
                candidate = ReviewerCandidate(
                    id=f"{NEW_REVIEWER_ID_PREFIX}{rec.id}",
                    email=rec.email,
                    name=rec.name,
                    score=score,
                    final_score=score,
                    current_load=0,
                    source="recommended_new",
                    recommended_id=rec.id,
                )
            validated.setdefault(candidate.id, candidate)
        return list(validated.values())

    async def _assign_existing_reviewer(
        self,
        reviewer_id: str,
        article: Article,
        editor_id: str,
        deadline: datetime,
    ) -> Review:
        profile = await self._repo.get_reviewer_profile(reviewer_id)
        if profile is not None and profile.current_review_load >= profile.max_reviews_per_month:
            raise ValidationError(f"Reviewer {reviewer_id} has reached maximum workload")

        now = self._clock.now()
        review = await self._repo.insert_review(
            Review(
                id=self._ids.new_id(),
                article_id=article.id,
                reviewer_id=reviewer_id,
                status=ReviewStatus.PENDING,
                invited_by=editor_id,
                due_at=deadline,
                created_at=now,
            )
        )
        if profile is not None:
            await self._repo.adjust_reviewer_counters(reviewer_id, load_delta=1)

        reviewer = await self._repo.get_user(reviewer_id)
        if reviewer is not None:
            await self._notifier.send_email(
                reviewer.email,
                "review_invitation",
                {
                    "recipient_name": reviewer.display_name,
                    "article_title": article.title,
                    "invitation_token": review.id,
                    "review_url": f"{self._app_config.public_base_url}/reviewer/invitation/{review.id}",
                    "response_deadline": (now + timedelta(days=self._config.invitation_response_days)).date().isoformat(),
                    "deadline": deadline.date().isoformat(),
                },
            )
        await self._notifier.notify(
            reviewer_id,
            "REVIEW_ASSIGNED",
            "New Review Assignment",
            f'You have been assigned to review: "{article.title}"',
            article.id,
        )
        return review

    async def _invite_new_reviewer(self, rec: RecommendedReviewer, article: Article, deadline: datetime) -> None:
        # 中文注释: 未注册的推荐人不创建站内审稿任务，只记录“已联系”并发送外部邀请
        updated = await self._repo.mark_recommended_contacted(
            rec.id,
            now=self._clock.now(),
            notes="Invited to review manuscript",
        )
        token = self._token_signer(updated.email) if self._token_signer else self._ids.new_id()
        await self._notifier.send_email(
            updated.email,
            "external_review_invitation",
            {
                "recipient_name": updated.name,
                "article_title": article.title,
                "invitation_token": token,
                "invitation_url": f"{self._app_config.public_base_url}/reviewer/apply?invitation={token}",
                "deadline": deadline.date().isoformat(),
            },
        )

    async def _finalize(
        self,
        article: Article,
        submission_id: str,
        route: Sequence[str],
        result: AssignmentResult,
        editor_id: str,
    ) -> None:
        if not result.assigned_reviewers:
            return
        try:
            await self._repo.add_article_reviewers(article.id, result.assigned_reviewers, now=self._clock.now())
        except Exception as e:
            logger.warning("[ReviewerAssignment] update reviewer_ids failed: %s", e)
            result.errors.append(f"Failed to record reviewers on article: {e}")

        if not route:
            return
        try:
            await self._editorial.advance_through(
                submission_id,
                route,
                editor_id,
                notes=f"{len(result.assigned_reviewers)} reviewer(s) assigned",
            )
        except (InvalidTransition, StaleSubmission) as e:
            # 中文注释: 已成功的分配不回滚；状态未推进的原因如实返回给调用方
            logger.warning("[ReviewerAssignment] advance to under_review failed: %s", e.detail)
            result.errors.append(f"Status not advanced to under_review: {e.detail}")
