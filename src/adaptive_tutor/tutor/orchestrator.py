"""Top-level tutoring flow: sessions, message routing and learner state updates."""

import random
import uuid
from datetime import datetime
from enum import StrEnum

import structlog

from adaptive_tutor.analysis import insights
from adaptive_tutor.analysis.signals import SignalAnalyzer
from adaptive_tutor.conversation import prompts
from adaptive_tutor.conversation.adaptation import DifficultyAdaptationEngine, is_successful_response
from adaptive_tutor.conversation.personalization import PersonalizationEngine
from adaptive_tutor.conversation.session_context import SessionContextManager, complexity_of
from adaptive_tutor.errors import GenerationError, PersistenceError
from adaptive_tutor.generation.client import Generator
from adaptive_tutor.knowledge.graph import KnowledgeGraph
from adaptive_tutor.models.analysis import Analysis, Intent
from adaptive_tutor.models.learning_profile import LearningProfile
from adaptive_tutor.models.response import ResponseConfig
from adaptive_tutor.models.session import (
    ChatMessage,
    DifficultyTier,
    MessageKind,
    MessageRole,
    Reply,
    ReplyStatus,
    SessionContext,
    SessionMetrics,
    SessionStatus,
    SessionSummary,
    TutorSession,
)
from adaptive_tutor.progress.rewards import XpReason, apply_quiz_result, award_xp, update_streak
from adaptive_tutor.storage import response_cache
from adaptive_tutor.storage.persistence import PersistenceGateway
from adaptive_tutor.storage.profile_store import LearningProfileStore
from adaptive_tutor.storage.response_cache import ResponseCache
from adaptive_tutor.storage.writer import PersistenceWorker

logger = structlog.get_logger()

ANSWER_PROGRESS = 5.0
QUIZ_PROGRESS = 10.0


class Handler(StrEnum):
    ANSWER_QUESTION = "answer_question"
    HANDLE_CONFUSION = "handle_confusion"
    GENERATE_QUIZ = "generate_quiz"
    GENERATE_HINT = "generate_hint"
    PROGRESS_REPORT = "progress_report"
    GENERAL_RESPONSE = "general_response"


def route_intent(intent: Intent) -> Handler:
    match intent:
        case (
            Intent.QUESTION
            | Intent.DEEP_EXPLANATION
            | Intent.QUICK_CLARIFICATION
            | Intent.PROBLEM_SOLVING
            | Intent.CONCEPTUAL_UNDERSTANDING
            | Intent.APPLICATION_REQUEST
            | Intent.VALIDATION_SEEKING
        ):
            return Handler.ANSWER_QUESTION
        case Intent.CONFUSION | Intent.CONFUSION_SIGNAL:
            return Handler.HANDLE_CONFUSION
        case Intent.QUIZ_REQUEST:
            return Handler.GENERATE_QUIZ
        case Intent.HINT_REQUEST:
            return Handler.GENERATE_HINT
        case Intent.PROGRESS_CHECK | Intent.PROGRESS_INQUIRY:
            return Handler.PROGRESS_REPORT
        case Intent.GENERAL:
            return Handler.GENERAL_RESPONSE


class _Plan:
    """What phase one decided; phase two fills in the reply text."""

    def __init__(self, handler: Handler, kind: MessageKind) -> None:
        self.handler = handler
        self.kind = kind
        self.prompt: str | None = None
        self.text: str | None = None
        self.cache_key: str | None = None
        self.from_cache = False
        self.config: ResponseConfig | None = None
        self.quiz_concept: str | None = None
        self.quiz_item: str | None = None
        self.correct_index: int | None = None
        self.hint_level: int | None = None


class TutoringOrchestrator:
    """Routes learner messages through analysis, personalization and generation.

    Per-user state is mutated only while holding that user's lock from the
    profile store. The generation call runs outside the lock, and persistence
    is handed to a background worker without awaiting it.

    Args:
        generator: External text generation (already wrapped with retries).
        graph: Concept graph and quiz bank.
        gateway: Optional document store for profiles, messages and sessions.
        analyzer: Signal analyzer; a default one is created when omitted.
        adaptation: Difficulty adaptation engine.
        cache: Shared response cache.
        recent_sessions_days: Lookback window for the welcome message.
        rng: Random source for quiz and praise selection.
    """

    def __init__(
        self,
        generator: Generator,
        graph: KnowledgeGraph,
        gateway: PersistenceGateway | None = None,
        *,
        analyzer: SignalAnalyzer | None = None,
        adaptation: DifficultyAdaptationEngine | None = None,
        cache: ResponseCache | None = None,
        recent_sessions_days: int = 7,
        rng: random.Random | None = None,
    ) -> None:
        self.generator = generator
        self.graph = graph
        self.gateway = gateway
        self.analyzer = analyzer if analyzer is not None else SignalAnalyzer()
        self.adaptation = adaptation if adaptation is not None else DifficultyAdaptationEngine()
        self.personalization = PersonalizationEngine(self.analyzer, self.adaptation)
        self.cache = cache if cache is not None else ResponseCache()
        self.contexts = SessionContextManager()
        self.profiles = LearningProfileStore(gateway)
        self.writer = PersistenceWorker(gateway) if gateway is not None else None
        self.recent_sessions_days = recent_sessions_days
        self.rng = rng or random.Random()
        self._sessions: dict[str, TutorSession] = {}

        self.adaptation.on_tier_change(self._on_tier_change)

    # -- public surface -------------------------------------------------

    async def start_session(
        self,
        user_id: str,
        subject: str,
        difficulty: DifficultyTier | str = DifficultyTier.MEDIUM,
    ) -> str:
        """Open a session, greet the learner and award the session bonus."""
        difficulty = DifficultyTier(difficulty)
        session_id = f"session_{uuid.uuid4().hex[:12]}"
        if self.writer is not None:
            self.writer.start()

        recent = await self._load_recent_sessions(user_id)

        async with self.profiles.locked(user_id) as profile:
            update_streak(profile)
            session = TutorSession(
                session_id=session_id,
                user_id=user_id,
                subject=subject,
                difficulty=difficulty,
                start_mastery=profile.subject_mastery.get(subject, 0.0),
                start_xp=profile.xp,
                recent_sessions_count=len(recent),
            )
            self.contexts.create(session_id, subject, difficulty.value)
            welcome = ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=MessageRole.ASSISTANT,
                content=prompts.welcome_message(profile, subject, recent),
                kind=MessageKind.WELCOME,
            )
            session.add_message(welcome)
            profile.total_sessions += 1
            award_xp(profile, XpReason.SESSION_STARTED)
            self._sessions[session_id] = session

            self._persist_profile(profile)
            self._persist_message(welcome)
            self._persist_session(session)

        logger.info(
            "session_started",
            session_id=session_id,
            user_id=user_id,
            subject=subject,
            difficulty=difficulty.value,
            recent_sessions=len(recent),
        )
        return session_id

    async def send_message(self, session_id: str, text: str) -> Reply:
        """Handle one learner message and return the tutor's reply."""
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning("unknown_session", session_id=session_id)
            return Reply(session_id=session_id, status=ReplyStatus.NO_SUCH_SESSION)
        user_id = session.user_id

        # Phase 1: analyze and plan under the user's lock.
        async with self.profiles.locked(user_id) as profile:
            context = self.contexts.get(session_id)
            analysis = self.analyzer.analyze(text, user_id, context)
            if session.status == SessionStatus.CREATED:
                session.status = SessionStatus.ACTIVE
            history = list(session.messages)
            user_message = session.add_message(ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=MessageRole.USER,
                content=text,
                intent=analysis.intent,
            ))
            self._persist_message(user_message)
            plan = self._plan(session, context, profile, analysis, text, history)

        # Phase 2: external generation, outside the lock.
        failed = False
        if plan.text is None and plan.prompt is not None:
            try:
                plan.text = await self.generator.generate(plan.prompt)
            except GenerationError:
                failed = True
                logger.exception(
                    "generation_failed",
                    session_id=session_id,
                    intent=analysis.intent.value,
                    complexity=analysis.complexity.value,
                )

        # Phase 3: fold the outcome into learner state.
        async with self.profiles.locked(user_id) as profile:
            if session_id not in self._sessions or session.status == SessionStatus.ENDED:
                logger.warning("session_ended_during_generation", session_id=session_id)
                return Reply(session_id=session_id, status=ReplyStatus.NO_SUCH_SESSION)
            if failed:
                reply_message = session.add_message(ChatMessage(
                    session_id=session_id,
                    user_id=user_id,
                    role=MessageRole.ASSISTANT,
                    content=prompts.APOLOGY,
                    kind=MessageKind.ERROR,
                    intent=analysis.intent,
                ))
                self._persist_message(reply_message)
                self._persist_session(session)
                return Reply(
                    session_id=session_id,
                    status=ReplyStatus.GENERATION_FAILED,
                    message=reply_message,
                    analysis=analysis,
                    response_config=plan.config,
                )

            text_out = self._finish(plan, session, profile, analysis, text)
            if plan.handler == Handler.ANSWER_QUESTION:
                await self.adaptation.refresh(user_id)
            profile.messages_sent += 1
            new_badges = award_xp(profile, XpReason.MESSAGE_SENT)

            reply_message = session.add_message(ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=MessageRole.ASSISTANT,
                content=text_out,
                kind=plan.kind,
                intent=analysis.intent,
                hint_level=plan.hint_level,
                quiz_concept_id=plan.quiz_concept,
                quiz_item_id=plan.quiz_item,
                correct_index=plan.correct_index,
            ))
            self._persist_message(reply_message)
            self._persist_profile(profile)
            self._persist_session(session)

        logger.info(
            "message_handled",
            session_id=session_id,
            handler=plan.handler.value,
            intent=analysis.intent.value,
            from_cache=plan.from_cache,
        )
        return Reply(
            session_id=session_id,
            message=reply_message,
            analysis=analysis,
            response_config=plan.config,
            from_cache=plan.from_cache,
            xp_awarded=XpReason.MESSAGE_SENT.points,
            new_badges=[badge.value for badge in new_badges],
        )

    async def submit_quiz_answer(
        self,
        session_id: str,
        concept_id: str,
        answer_letter: str,
        correct_index: int,
        explanation: str | None = None,
    ) -> Reply:
        """Grade a lettered answer (A-D) against the correct option index."""
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning("unknown_session", session_id=session_id)
            return Reply(session_id=session_id, status=ReplyStatus.NO_SUCH_SESSION)
        user_id = session.user_id

        letter = answer_letter.strip().upper()
        answer_index = -1
        if len(letter) == 1 and letter in prompts.OPTION_LETTERS:
            answer_index = prompts.OPTION_LETTERS.index(letter)
        correct = answer_index == correct_index

        async with self.profiles.locked(user_id) as profile:
            if session.status == SessionStatus.CREATED:
                session.status = SessionStatus.ACTIVE
            node = self.graph.get(concept_id)
            subject = node.subject if node is not None else session.subject
            perfect = apply_quiz_result(profile, concept_id, subject, correct)
            reason = XpReason.QUIZ_CORRECT if correct else XpReason.QUIZ_ATTEMPT
            new_badges = award_xp(profile, reason)
            self.contexts.update(session_id, new_concept=concept_id)

            answer = session.add_message(ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=MessageRole.USER,
                content=letter,
                kind=MessageKind.QUIZ_ANSWER,
            ))
            result = session.add_message(ChatMessage(
                session_id=session_id,
                user_id=user_id,
                role=MessageRole.ASSISTANT,
                content=prompts.format_quiz_result(correct, correct_index, explanation, self.rng),
                kind=MessageKind.QUIZ_RESULT,
                is_correct=correct,
            ))
            self._persist_message(answer)
            self._persist_message(result)
            self._persist_profile(profile)
            self._persist_session(session)

        logger.info(
            "quiz_answered",
            session_id=session_id,
            concept_id=concept_id,
            correct=correct,
            perfect=perfect,
        )
        return Reply(
            session_id=session_id,
            message=result,
            xp_awarded=reason.points,
            new_badges=[badge.value for badge in new_badges],
        )

    async def end_session(self, session_id: str) -> SessionSummary:
        """Close a session, compute its metrics and discard its context."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            logger.warning("unknown_session", session_id=session_id)
            return SessionSummary(session_id=session_id, found=False)

        async with self.profiles.locked(session.user_id) as profile:
            context = self.contexts.discard(session_id)
            session.ended_at = datetime.now()
            session.status = SessionStatus.ENDED
            metrics = self._session_metrics(session, context, profile)
            self._persist_session(session, metrics)
            self._persist_profile(profile)

        logger.info(
            "session_ended",
            session_id=session_id,
            user_id=session.user_id,
            messages=metrics.total_messages,
            mastery_gain=round(metrics.mastery_gain, 3),
            engagement=round(metrics.engagement_score, 3),
        )
        return SessionSummary(
            session_id=session_id,
            user_id=session.user_id,
            subject=session.subject,
            started_at=session.started_at,
            ended_at=session.ended_at,
            metrics=metrics,
        )

    def get_recommended_difficulty(self, user_id: str) -> DifficultyTier:
        return self.adaptation.recommend_difficulty(user_id)

    async def get_next_concept(self, user_id: str, subject: str) -> str | None:
        profile = await self.profiles.get(user_id)
        node = self.graph.recommend_next_concept(profile, subject)
        return node.id if node else None

    def get_session(self, session_id: str) -> TutorSession | None:
        return self._sessions.get(session_id)

    def get_session_messages(self, session_id: str) -> list[ChatMessage]:
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    async def get_user_analytics(self, user_id: str) -> dict:
        profile = await self.profiles.get(user_id)
        return {
            "total_points": profile.xp,
            "level": profile.level,
            "title": profile.title,
            "current_streak": profile.current_streak,
            "badges_earned": len(profile.unlocked_badges),
            "completed_concepts": len(profile.completed_concepts),
            "subject_mastery": dict(profile.subject_mastery),
            "struggling_areas": list(profile.struggling_concepts),
            "last_activity": profile.last_activity.isoformat(),
            "learning_patterns": self.personalization.learning_patterns(user_id),
        }

    async def get_progress_analysis(self, user_id: str, subject: str) -> insights.ProgressAnalysis:
        profile = await self.profiles.get(user_id)
        memory = self.analyzer.memory(user_id)
        mastery = profile.subject_mastery.get(subject, 0.0)
        return insights.ProgressAnalysis(
            subject=subject,
            overall_mastery=mastery,
            progress_trend=insights.progress_trend(memory),
            knowledge_gaps=self.graph.knowledge_gaps(profile, subject),
            strengths=self.graph.strengths(profile, subject),
            recommended_topics=self.graph.recommended_topics(profile, subject),
            learning_velocity=insights.learning_velocity(memory),
            engagement_level=insights.current_engagement(
                self.personalization.preferred_intents(user_id),
                memory,
                self.analyzer.last_interaction(user_id),
            ),
            next_milestone=insights.next_milestone(mastery),
        )

    async def aclose(self) -> None:
        """Flush pending writes and stop the persistence worker."""
        if self.writer is not None:
            await self.writer.stop()

    # -- message handling ----------------------------------------------

    def _plan(
        self,
        session: TutorSession,
        context: SessionContext | None,
        profile: LearningProfile,
        analysis: Analysis,
        text: str,
        history: list[ChatMessage],
    ) -> _Plan:
        handler = route_intent(analysis.intent)
        subject = session.subject

        match handler:
            case Handler.ANSWER_QUESTION:
                plan = _Plan(handler, MessageKind.ANSWER)
                plan.config = self.personalization.build(text, session.user_id, analysis)
                plan.cache_key = response_cache.make_key(subject, analysis, text)
                if response_cache.is_readable(analysis):
                    cached = self.cache.get(plan.cache_key)
                    if cached is not None:
                        plan.text = cached
                        plan.from_cache = True
                if plan.text is None:
                    plan.prompt = prompts.build_answer_prompt(
                        text, subject, profile, analysis, plan.config, history
                    )
            case Handler.HANDLE_CONFUSION:
                plan = _Plan(handler, MessageKind.CONFUSION_HELP)
                plan.prompt = prompts.build_confusion_prompt(text, history)
            case Handler.GENERATE_QUIZ:
                plan = _Plan(handler, MessageKind.QUIZ)
                concept = self.graph.pick_quiz_concept(profile, subject)
                if concept is not None:
                    item = self.rng.choice(self.graph.quizzes_for(concept.id))
                    plan.quiz_concept = concept.id
                    plan.quiz_item = item.id
                    plan.correct_index = item.correct_index
                    plan.text = prompts.format_quiz(item, concept)
                else:
                    difficulty = context.difficulty if context else session.difficulty.value
                    plan.prompt = prompts.build_dynamic_quiz_prompt(subject, difficulty)
            case Handler.GENERATE_HINT:
                plan = _Plan(handler, MessageKind.HINT)
                plan.hint_level = context.hint_level if context else 0
                question = (context.last_question if context else None) or text
                plan.prompt = prompts.build_hint_prompt(question, plan.hint_level)
            case Handler.PROGRESS_REPORT:
                plan = _Plan(handler, MessageKind.PROGRESS_REPORT)
                plan.text = prompts.progress_report(profile, subject, self.graph)
            case Handler.GENERAL_RESPONSE:
                plan = _Plan(handler, MessageKind.TEXT)
                plan.prompt = prompts.build_general_prompt(text, subject, profile, history)
        return plan

    def _finish(
        self,
        plan: _Plan,
        session: TutorSession,
        profile: LearningProfile,
        analysis: Analysis,
        text: str,
    ) -> str:
        """Apply the handler's state updates and return the reply text."""
        session_id = session.session_id
        context = self.contexts.get(session_id)
        response = plan.text or ""

        match plan.handler:
            case Handler.ANSWER_QUESTION:
                if (
                    not plan.from_cache
                    and plan.cache_key is not None
                    and response_cache.is_storable(analysis, response)
                ):
                    self.cache.put(plan.cache_key, response)
                self.contexts.update(session_id, new_topic=session.subject, progress_delta=ANSWER_PROGRESS)
                if context is not None:
                    context.last_question = text
                self.personalization.record_interaction(session.user_id, analysis, response)
                self.adaptation.record_outcome(
                    session.user_id, analysis, is_successful_response(response)
                )
            case Handler.HANDLE_CONFUSION:
                self.contexts.update(session_id, adaptive_adjustment=True)
                concept_id = self._current_concept(context, profile, session.subject)
                if concept_id is not None:
                    profile.mark_struggling(concept_id)
            case Handler.GENERATE_QUIZ:
                self.contexts.update(
                    session_id,
                    new_concept=plan.quiz_concept or session.subject,
                    progress_delta=QUIZ_PROGRESS,
                )
                if context is not None:
                    context.last_question = response
            case Handler.GENERATE_HINT:
                response = prompts.format_hint(response, plan.hint_level or 0)
                if context is not None:
                    context.hint_level += 1
                self.contexts.update(session_id, adaptive_adjustment=True)
            case Handler.PROGRESS_REPORT | Handler.GENERAL_RESPONSE:
                pass
        return response

    def _current_concept(
        self, context: SessionContext | None, profile: LearningProfile, subject: str
    ) -> str | None:
        """Latest graph concept explored in the session, else the recommended one."""
        if context is not None:
            for concept_id in reversed(context.concepts_explored):
                if concept_id in self.graph:
                    return concept_id
        node = self.graph.recommend_next_concept(profile, subject)
        return node.id if node else None

    async def _on_tier_change(
        self, user_id: str, old_tier: DifficultyTier, new_tier: DifficultyTier
    ) -> None:
        for session in self._sessions.values():
            if session.user_id == user_id:
                self.contexts.update(session.session_id, difficulty_change=new_tier.value)

    # -- metrics and persistence ---------------------------------------

    def _session_metrics(
        self,
        session: TutorSession,
        context: SessionContext | None,
        profile: LearningProfile,
    ) -> SessionMetrics:
        messages = session.messages
        duration = 0
        if messages:
            duration = int((messages[-1].timestamp - messages[0].timestamp).total_seconds() // 60)
        final_mastery = profile.subject_mastery.get(session.subject, 0.0)
        return SessionMetrics(
            total_messages=len(messages),
            user_messages=len(session.user_messages),
            assistant_messages=len(session.assistant_messages),
            quizzes_taken=sum(1 for m in messages if m.kind == MessageKind.QUIZ),
            hints_used=sum(1 for m in messages if m.kind == MessageKind.HINT),
            correct_answers=sum(1 for m in messages if m.is_correct),
            duration_minutes=duration,
            engagement_score=insights.engagement_score(messages),
            topics_discussed=len(context.topics_discussed) if context else 0,
            concepts_explored=len(context.concepts_explored) if context else 0,
            difficulty_progression=list(context.difficulty_trace) if context else [],
            learning_path_progress=context.progress if context else 0.0,
            adaptive_adjustments=context.adaptive_adjustments if context else 0,
            context_complexity=complexity_of(context) if context else 0.0,
            mastery_gain=final_mastery - session.start_mastery,
            final_mastery=final_mastery,
            xp_earned=profile.xp - session.start_xp,
        )

    async def _load_recent_sessions(self, user_id: str) -> list[SessionSummary]:
        if self.gateway is None:
            return []
        try:
            return await self.gateway.load_recent_sessions(user_id, self.recent_sessions_days)
        except PersistenceError as e:
            logger.warning("recent_sessions_load_failed", user_id=user_id, error=str(e))
            return []

    def _persist_profile(self, profile: LearningProfile) -> None:
        if self.writer is not None:
            self.writer.save_profile(profile)

    def _persist_message(self, message: ChatMessage) -> None:
        if self.writer is not None:
            self.writer.save_message(message)

    def _persist_session(self, session: TutorSession, metrics: SessionMetrics | None = None) -> None:
        if self.writer is not None:
            self.writer.save_session(session, metrics)


