"""
Similarity Service - Finding related problems and grouping them.

Similarity is keyword based (algorithm "v1-keyword"):
- Jaccard overlap of the words longer than three characters in
  title + statement, weighted 0.5
- A shared, non-null theme, worth 0.5 weighted 0.5

Pairs are stored once, with problem_id_a < problem_id_b. Clusters are
either created by hand or generated per theme on a full recompute.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, or_

from studio.core.exceptions import ConflictError, NotFoundError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.core.validators import slugify
from studio.database.connection import get_database
from studio.database.models import ProblemBankEntry, ProblemCluster, ProblemClusterMember, ProblemSimilarity
from studio.services.auth_service import CurrentUser

ALGORITHM_VERSION = "v1-keyword"
SIMILAR_LIMIT = 5
CLUSTER_PREVIEW_LIMIT = 10

THEME_SCORE = 0.8
KEYWORD_SCORE = 0.5
AUTO_MEMBERSHIP_SCORE = 0.8

THEME_CLUSTER_NAMES = {
    "healthcare": "Healthcare + AI Problems",
    "education": "Education + AI Problems",
    "agriculture": "Agriculture + AI Problems",
    "environment": "Environment + AI Problems",
    "community": "Community + AI Problems",
    "myjkkn": "MyJKKN Data Apps",
    "other": "Other Problems",
}


def normalize_text(text: str) -> str:
    text = re.sub(r"[^\w\s]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def keywords(text: str) -> Set[str]:
    return {word for word in normalize_text(text).split(" ") if len(word) > 3}


def compute_similarity(
    text_a: str,
    text_b: str,
    theme_a: Optional[str] = None,
    theme_b: Optional[str] = None
) -> float:
    """
    Weighted keyword and theme similarity in [0, 1].

    Example:
        >>> compute_similarity("hostel water supply", "hostel water timing", "community", "community")
        0.5
    """
    theme_similarity = 0.5 if theme_a is not None and theme_a == theme_b else 0.0

    words_a, words_b = keywords(text_a), keywords(text_b)
    if not words_a or not words_b:
        return theme_similarity

    jaccard = len(words_a & words_b) / len(words_a | words_b)
    return min(jaccard * 0.5 + theme_similarity * 0.5, 1.0)


def theme_cluster_name(theme: str) -> str:
    return THEME_CLUSTER_NAMES.get(theme, f"{theme} Problems")


def _problem_text(problem: ProblemBankEntry) -> str:
    return f"{problem.title} {problem.problem_statement}"


def _preview(problem: ProblemBankEntry, score: float) -> Dict[str, Any]:
    return {
        "id": problem.id,
        "title": problem.title,
        "problem_statement": (problem.problem_statement or "")[:200],
        "theme": problem.theme,
        "similarity_score": score,
    }


def refresh_cluster_stats(cluster: ProblemCluster) -> None:
    """Recompute the denormalized counts of a cluster from its members."""
    problems = [m.problem for m in cluster.members if m.problem is not None]
    institutions = {p.institution_id for p in problems if p.institution_id}
    severities = [p.severity_rating for p in problems if p.severity_rating is not None]

    cluster.problem_count = len(problems)
    cluster.institutions_count = len(institutions)
    cluster.cross_institutional = len(institutions) > 1
    cluster.avg_severity = sum(severities) / len(severities) if severities else None
    cluster.updated_at = datetime.utcnow()


class SimilarityService(LoggerMixin):
    """
    Similar-problem lookups, batch similarity runs and clusters.

    Example:
        >>> service = SimilarityService()
        >>> service.compute(threshold=0.3, recompute_all=True)["clusters_updated"]
        3
    """

    def find_similar(self, problem_id: str) -> Dict[str, Any]:
        """
        Up to five related problems.

        Stored pairs win; without any, same-theme problems and then
        problems mentioning the first title keyword are returned.
        """
        with get_database().get_session() as session:
            source = session.get(ProblemBankEntry, problem_id)
            if source is None:
                raise NotFoundError("Problem not found")

            pairs = (
                session.query(ProblemSimilarity)
                .filter(or_(
                    ProblemSimilarity.problem_id_a == problem_id,
                    ProblemSimilarity.problem_id_b == problem_id,
                ))
                .order_by(ProblemSimilarity.similarity_score.desc())
                .limit(SIMILAR_LIMIT)
                .all()
            )
            if pairs:
                similar = []
                for pair in pairs:
                    other_id = pair.problem_id_b if pair.problem_id_a == problem_id else pair.problem_id_a
                    other = session.get(ProblemBankEntry, other_id)
                    if other is not None:
                        similar.append(_preview(other, pair.similarity_score))
                return {"similar": similar, "method": "precomputed"}

            combined: List[Dict[str, Any]] = []
            seen = {problem_id}

            if source.theme is not None:
                same_theme = (
                    session.query(ProblemBankEntry)
                    .filter(ProblemBankEntry.theme == source.theme, ProblemBankEntry.id != problem_id)
                    .limit(SIMILAR_LIMIT)
                    .all()
                )
                for problem in same_theme:
                    seen.add(problem.id)
                    combined.append(_preview(problem, THEME_SCORE))

            title_words = [w for w in source.title.lower().split() if len(w) > 3]
            if title_words:
                pattern = f"%{title_words[0]}%"
                matches = (
                    session.query(ProblemBankEntry)
                    .filter(
                        ProblemBankEntry.id != problem_id,
                        or_(
                            func.lower(ProblemBankEntry.title).like(pattern),
                            func.lower(ProblemBankEntry.problem_statement).like(pattern),
                        ),
                    )
                    .limit(SIMILAR_LIMIT)
                    .all()
                )
                for problem in matches:
                    if problem.id not in seen and len(combined) < SIMILAR_LIMIT:
                        seen.add(problem.id)
                        combined.append(_preview(problem, KEYWORD_SCORE))

            return {"similar": combined[:SIMILAR_LIMIT], "method": "keyword_fallback"}

    # ============================================================
    # Batch computation
    # ============================================================

    def compute(
        self,
        problem_id: Optional[str] = None,
        threshold: float = 0.3,
        recompute_all: bool = False
    ) -> Dict[str, Any]:
        """
        Score open problems pairwise and store pairs at or above threshold.

        With problem_id only pairs involving that problem are scored.
        With recompute_all one auto cluster per theme (two or more
        problems) is created or refreshed.
        """
        with get_database().get_session() as session:
            problems = session.query(ProblemBankEntry).filter(ProblemBankEntry.status == "open").all()
            if len(problems) < 2:
                return {
                    "message": "Not enough problems to compute similarities",
                    "problem_count": len(problems),
                    "similarities_computed": 0,
                }

            existing = {
                (pair.problem_id_a, pair.problem_id_b): pair
                for pair in session.query(ProblemSimilarity).all()
            }
            now = datetime.utcnow()
            computed = 0

            for source in problems:
                for target in problems:
                    if source.id >= target.id:
                        continue
                    if problem_id and problem_id not in (source.id, target.id):
                        continue

                    score = compute_similarity(
                        _problem_text(source), _problem_text(target), source.theme, target.theme
                    )
                    if score < threshold:
                        continue

                    pair = existing.get((source.id, target.id))
                    if pair is None:
                        pair = ProblemSimilarity(problem_id_a=source.id, problem_id_b=target.id)
                        session.add(pair)
                        existing[(source.id, target.id)] = pair
                    pair.similarity_score = score
                    pair.similarity_type = "keyword"
                    pair.algorithm_version = ALGORITHM_VERSION
                    pair.computed_at = now
                    computed += 1

            clusters_updated = self._rebuild_theme_clusters(session, problems) if recompute_all else 0
            session.flush()

            self.logger.info(
                f"Similarity run: {len(problems)} problems, {computed} pairs, {clusters_updated} clusters"
            )
            return {
                "success": True,
                "problem_count": len(problems),
                "similarities_computed": computed,
                "clusters_updated": clusters_updated,
                "threshold": threshold,
            }

    def _rebuild_theme_clusters(self, session, problems: List[ProblemBankEntry]) -> int:
        by_theme: Dict[str, List[ProblemBankEntry]] = {}
        for problem in problems:
            if problem.theme:
                by_theme.setdefault(problem.theme, []).append(problem)

        updated = 0
        for theme, members in by_theme.items():
            if len(members) < 2:
                continue

            name = theme_cluster_name(theme)
            slug = re.sub(r"\s+", "-", theme.lower())
            cluster = session.query(ProblemCluster).filter(ProblemCluster.slug == slug).first()
            if cluster is None:
                cluster = ProblemCluster(slug=slug)
                session.add(cluster)
            cluster.name = name
            cluster.description = f"Auto-generated cluster for {name} problems"
            cluster.primary_theme = theme
            cluster.status = "active"

            current = {m.problem_id for m in cluster.members}
            for problem in members:
                if problem.id not in current:
                    cluster.members.append(ProblemClusterMember(
                        problem=problem,
                        membership_score=AUTO_MEMBERSHIP_SCORE,
                        added_by="auto",
                    ))
            refresh_cluster_stats(cluster)
            updated += 1
        return updated

    def get_stats(self) -> Dict[str, Any]:
        with get_database().get_session() as session:
            scores = [s for (s,) in session.query(ProblemSimilarity.similarity_score).all()]
            last_computed = session.query(func.max(ProblemSimilarity.computed_at)).scalar()
            clusters = session.query(ProblemCluster).filter(ProblemCluster.status == "active").all()
            open_count = (
                session.query(func.count(ProblemBankEntry.id))
                .filter(ProblemBankEntry.status == "open")
                .scalar()
            )
            return {
                "total_problems": open_count or 0,
                "total_similarities": len(scores),
                "avg_similarity_score": sum(scores) / len(scores) if scores else 0,
                "total_clusters": len(clusters),
                "clusters": [
                    {
                        "id": c.id,
                        "name": c.name,
                        "problem_count": c.problem_count,
                        "primary_theme": c.primary_theme,
                    }
                    for c in clusters
                ],
                "last_computed": last_computed.isoformat() if last_computed else None,
            }

    # ============================================================
    # Clusters
    # ============================================================

    def list_clusters(self, theme: Optional[str] = None, include_problems: bool = False) -> Dict[str, Any]:
        with get_database().get_session() as session:
            query = session.query(ProblemCluster).filter(ProblemCluster.status == "active")
            if theme:
                query = query.filter(ProblemCluster.primary_theme == theme)
            clusters = query.order_by(ProblemCluster.problem_count.desc()).all()

            result = []
            for cluster in clusters:
                data = cluster.to_dict()
                data.pop("status", None)
                if include_problems:
                    members = sorted(cluster.members, key=lambda m: m.membership_score, reverse=True)
                    problems = []
                    for member in members[:CLUSTER_PREVIEW_LIMIT]:
                        problem = member.problem
                        if problem is None:
                            continue
                        problems.append({
                            "id": problem.id,
                            "title": problem.title,
                            "problem_statement": problem.problem_statement,
                            "theme": problem.theme,
                            "validation_status": problem.validation_status,
                            "severity_rating": problem.severity_rating,
                            "institution_id": problem.institution_id,
                            "membership_score": member.membership_score,
                            "is_centroid": member.is_centroid,
                            "institution_short": problem.institution.short_name if problem.institution else None,
                        })
                    data["problems"] = problems
                    data["institutions_list"] = list(dict.fromkeys(
                        p["institution_short"] for p in problems if p["institution_short"]
                    ))
                result.append(data)

            return {"clusters": result, "total": len(result)}

    def create_cluster(
        self,
        admin: CurrentUser,
        name: Optional[str],
        description: Optional[str] = None,
        primary_theme: Optional[str] = None,
        problem_ids: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Create a hand-made cluster. The first listed problem is its centroid.

        Raises:
            ValidationError: Name missing
            ConflictError: A cluster with the same slug exists
        """
        if not name:
            raise ValidationError("Cluster name is required", field="name")
        slug = slugify(name)

        with get_database().get_session() as session:
            if session.query(ProblemCluster).filter(ProblemCluster.slug == slug).first() is not None:
                raise ConflictError("A cluster with this name already exists")

            cluster = ProblemCluster(
                name=name,
                slug=slug,
                description=description,
                primary_theme=primary_theme,
                status="active",
            )
            session.add(cluster)

            for index, pid in enumerate(problem_ids or []):
                problem = session.get(ProblemBankEntry, pid)
                if problem is None:
                    self.logger.warning(f"Skipping unknown problem {pid} for cluster {slug}")
                    continue
                cluster.members.append(ProblemClusterMember(
                    problem=problem,
                    membership_score=1.0,
                    is_centroid=index == 0,
                    added_by="manual",
                    added_by_user=admin.id,
                ))
            refresh_cluster_stats(cluster)
            session.flush()
            return cluster.to_dict()


# Global service instance
_similarity_service: Optional[SimilarityService] = None


def get_similarity_service() -> SimilarityService:
    """Get or create the global similarity service."""
    global _similarity_service
    if _similarity_service is None:
        _similarity_service = SimilarityService()
    return _similarity_service
