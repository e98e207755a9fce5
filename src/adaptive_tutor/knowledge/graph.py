"""Concept prerequisite graph and next-concept recommendation."""

from pathlib import Path

import structlog

from adaptive_tutor.config import load_knowledge_data
from adaptive_tutor.models.knowledge import KnowledgeNode, QuizItem
from adaptive_tutor.models.learning_profile import LearningProfile

logger = structlog.get_logger()

STRENGTH_THRESHOLD = 0.8
MAX_RECOMMENDED_TOPICS = 5


class KnowledgeGraph:
    """Immutable DAG of concepts with per-concept quiz items.

    Args:
        nodes: Concepts in iteration order; ties in recommendation keep this order.
        quizzes: Quiz items, each owned by a concept in ``nodes``.

    Raises:
        ValueError: On duplicate ids, unknown prerequisite or quiz concept ids,
            or a prerequisite cycle.
    """

    def __init__(self, nodes: list[KnowledgeNode], quizzes: list[QuizItem] | None = None) -> None:
        self._nodes: dict[str, KnowledgeNode] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"Duplicate concept id: {node.id}")
            self._nodes[node.id] = node

        for node in self._nodes.values():
            for prereq in node.prerequisites:
                if prereq not in self._nodes:
                    raise ValueError(f"Concept {node.id} has unknown prerequisite {prereq}")
        self._check_acyclic()

        self._quizzes: dict[str, list[QuizItem]] = {}
        for quiz in quizzes or []:
            if quiz.concept_id not in self._nodes:
                raise ValueError(f"Quiz {quiz.id} references unknown concept {quiz.concept_id}")
            self._quizzes.setdefault(quiz.concept_id, []).append(quiz)

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "KnowledgeGraph":
        """Load the graph from the knowledge YAML file."""
        data = load_knowledge_data(path)
        nodes = [KnowledgeNode(**item) for item in data["concepts"]]
        quizzes = [QuizItem(**item) for item in data["quizzes"]]
        logger.info("knowledge_graph_loaded", concepts=len(nodes), quizzes=len(quizzes))
        return cls(nodes, quizzes)

    def _check_acyclic(self) -> None:
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            if node_id in visiting:
                raise ValueError(f"Prerequisite cycle through {node_id}")
            visiting.add(node_id)
            for prereq in self._nodes[node_id].prerequisites:
                visit(prereq)
            visiting.discard(node_id)
            done.add(node_id)

        for node_id in self._nodes:
            visit(node_id)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self._nodes

    def get(self, concept_id: str) -> KnowledgeNode | None:
        return self._nodes.get(concept_id)

    @property
    def subjects(self) -> list[str]:
        return list(dict.fromkeys(node.subject for node in self._nodes.values()))

    def nodes_for_subject(self, subject: str) -> list[KnowledgeNode]:
        return [node for node in self._nodes.values() if node.subject == subject]

    def quizzes_for(self, concept_id: str) -> list[QuizItem]:
        return list(self._quizzes.get(concept_id, []))

    def prerequisites_met(self, node: KnowledgeNode, profile: LearningProfile) -> bool:
        completed = set(profile.completed_concepts)
        return all(prereq in completed for prereq in node.prerequisites)

    def recommend_next_concept(self, profile: LearningProfile, subject: str) -> KnowledgeNode | None:
        """Pick the unlocked concept with the lowest ``difficulty * (1 - mastery)``.

        Only concepts whose prerequisites are all completed qualify. Ties keep
        graph order.
        """
        candidates = [
            node for node in self.nodes_for_subject(subject) if self.prerequisites_met(node, profile)
        ]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda node: node.difficulty * (1 - profile.concept_mastery.get(node.id, 0.0)),
        )

    def pick_quiz_concept(self, profile: LearningProfile, subject: str) -> KnowledgeNode | None:
        """Weakest concept of the subject that has quiz items."""
        candidates = [node for node in self.nodes_for_subject(subject) if node.id in self._quizzes]
        if not candidates:
            return None
        return min(candidates, key=lambda node: profile.concept_mastery.get(node.id, 0.0))

    def recommended_topics(
        self, profile: LearningProfile, subject: str, limit: int = MAX_RECOMMENDED_TOPICS
    ) -> list[str]:
        """Names of unlocked, not yet completed concepts."""
        completed = set(profile.completed_concepts)
        names = [
            node.name
            for node in self.nodes_for_subject(subject)
            if node.id not in completed and self.prerequisites_met(node, profile)
        ]
        return names[:limit]

    def knowledge_gaps(self, profile: LearningProfile, subject: str) -> list[str]:
        gaps = []
        for concept_id in profile.struggling_concepts:
            node = self._nodes.get(concept_id)
            if node is not None and node.subject == subject:
                gaps.append(node.name)
        return gaps

    def strengths(self, profile: LearningProfile, subject: str) -> list[str]:
        strengths = []
        for concept_id, mastery in profile.concept_mastery.items():
            node = self._nodes.get(concept_id)
            if node is not None and node.subject == subject and mastery > STRENGTH_THRESHOLD:
                strengths.append(node.name)
        return strengths

    def display_name(self, concept_id: str) -> str:
        node = self._nodes.get(concept_id)
        return node.name if node else concept_id
