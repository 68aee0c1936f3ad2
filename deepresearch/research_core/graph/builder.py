from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from loguru import logger

from deepresearch.models.content import AnalyzedContent
from deepresearch.models.knowledge_graph import (
    Cluster,
    Entity,
    GraphBuildOptions,
    KnowledgeGraph,
    MindMap,
    MindMapNode,
    Relationship,
)

CLUSTER_COLORS = ("#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7", "#DDA0DD")
MAX_CLUSTERS = 6
MAX_MIND_MAP_DEPTH = 3
MAX_MIND_MAP_CHILDREN = 5

INITIAL_EDGE_WEIGHT = 0.5
EDGE_STRENGTHEN_STEP = 0.1


@dataclass(slots=True)
class Connections:
    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)


def _union(existing: list[str], extra: Iterable[str]) -> list[str]:
    return list(dict.fromkeys([*existing, *extra]))


class KnowledgeGraphBuilder:
    """Turns per-document analysis into one entity graph, clusters and a mind map.

    Entities are identified by case-insensitive name. Relationship keys are the
    ordered (source_entity_id, target_entity_id) pair as first encountered, so an
    A->B edge and a B->A edge coming from different documents stay distinct.
    """

    def build(
        self,
        contents: Sequence[AnalyzedContent],
        options: GraphBuildOptions | None = None,
    ) -> KnowledgeGraph:
        opts = options or GraphBuildOptions()

        by_name: dict[str, Entity] = {}
        for content in contents:
            for entity in content.entities:
                if entity.confidence < opts.min_entity_confidence:
                    continue
                key = entity.name.lower()
                existing = by_name.get(key)
                if existing is None:
                    by_name[key] = entity.model_copy(deep=True)
                    continue
                existing.source_ids = _union(existing.source_ids, entity.source_ids)
                existing.confidence = max(existing.confidence, entity.confidence)

        entities = sorted(by_name.values(), key=lambda e: e.confidence, reverse=True)
        entities = entities[: opts.max_nodes]
        survivors = {e.name.lower(): e for e in entities}

        edges: dict[tuple[str, str], Relationship] = {}
        for content in contents:
            doc_entities = [survivors[e.name.lower()] for e in content.entities if e.name.lower() in survivors]
            strengthened: set[tuple[str, str]] = set()
            for i, source in enumerate(doc_entities):
                for target in doc_entities[i + 1 :]:
                    if source.id == target.id:
                        continue
                    key = (source.id, target.id)
                    edge = edges.get(key)
                    if edge is None:
                        edges[key] = Relationship(
                            id=str(uuid.uuid4()),
                            source_entity_id=source.id,
                            target_entity_id=target.id,
                            type="related_to",
                            weight=INITIAL_EDGE_WEIGHT,
                            source_ids=[content.source_id],
                        )
                        strengthened.add(key)
                    elif key not in strengthened:
                        edge.weight = min(1.0, round(edge.weight + EDGE_STRENGTHEN_STEP, 6))
                        edge.source_ids = _union(edge.source_ids, [content.source_id])
                        strengthened.add(key)

        relationships = [r for r in edges.values() if r.weight >= opts.min_relationship_weight]
        clusters = self._clusters(survivors, contents) if opts.cluster_by_topic else []

        logger.debug(
            f"Built knowledge graph: {len(entities)} entities, "
            f"{len(relationships)} relationships, {len(clusters)} clusters"
        )
        return KnowledgeGraph(entities=entities, relationships=relationships, clusters=clusters)

    def merge(self, graphs: Sequence[KnowledgeGraph]) -> KnowledgeGraph:
        """Union graphs by entity name; the first-seen relationship per key wins."""
        by_name: dict[str, Entity] = {}
        canonical_id: dict[str, str] = {}
        for graph in graphs:
            for entity in graph.entities:
                key = entity.name.lower()
                existing = by_name.get(key)
                if existing is None:
                    existing = by_name[key] = entity.model_copy(deep=True)
                else:
                    existing.source_ids = _union(existing.source_ids, entity.source_ids)
                canonical_id[entity.id] = existing.id

        edges: dict[tuple[str, str], Relationship] = {}
        for graph in graphs:
            for rel in graph.relationships:
                source_id = canonical_id.get(rel.source_entity_id, rel.source_entity_id)
                target_id = canonical_id.get(rel.target_entity_id, rel.target_entity_id)
                if source_id == target_id:
                    continue
                key = (source_id, target_id)
                if key not in edges:
                    edges[key] = rel.model_copy(
                        update={"source_entity_id": source_id, "target_entity_id": target_id}
                    )

        return KnowledgeGraph(entities=list(by_name.values()), relationships=list(edges.values()))

    def find_connections(self, entity_id: str, graph: KnowledgeGraph, depth: int = 1) -> Connections:
        """Grow one connected set from entity_id over `depth` passes of the edge list.

        Entities added during a pass are visible to later edges of the same pass.
        """
        connected: set[str] = {entity_id}
        found: dict[str, Relationship] = {}
        for _ in range(depth):
            for rel in graph.relationships:
                if rel.source_entity_id in connected:
                    connected.add(rel.target_entity_id)
                    found.setdefault(rel.id, rel)
                if rel.target_entity_id in connected:
                    connected.add(rel.source_entity_id)
                    found.setdefault(rel.id, rel)

        return Connections(
            entities=[e for e in graph.entities if e.id in connected],
            relationships=list(found.values()),
        )

    def to_mind_map(self, graph: KnowledgeGraph, root_topic: str) -> MindMap:
        entities = graph.entities
        topic = root_topic.lower()
        root_index = next((i for i, e in enumerate(entities) if e.name.lower() == topic), None)
        if root_index is None:
            root_index = next((i for i, e in enumerate(entities) if e.type == "concept"), None)
        if root_index is None and entities:
            root_index = 0
        if root_index is None:
            return MindMap(
                title=root_topic,
                root=MindMapNode(id=str(uuid.uuid4()), label=root_topic),
            )

        index_of = {entity.id: i for i, entity in enumerate(entities)}
        adjacency: list[set[int]] = [set() for _ in entities]
        for rel in graph.relationships:
            a = index_of.get(rel.source_entity_id)
            b = index_of.get(rel.target_entity_id)
            if a is None or b is None or a == b:
                continue
            adjacency[a].add(b)
            adjacency[b].add(a)

        colors: dict[str, str] = {}
        for cluster in graph.clusters:
            for entity_id in cluster.entity_ids:
                if cluster.color:
                    colors.setdefault(entity_id, cluster.color)

        visited = bytearray(len(entities))
        visited[root_index] = 1

        def build_node(index: int, depth: int) -> MindMapNode:
            entity = entities[index]
            children: list[int] = []
            if depth < MAX_MIND_MAP_DEPTH:
                for neighbour in sorted(adjacency[index]):
                    if visited[neighbour]:
                        continue
                    visited[neighbour] = 1
                    children.append(neighbour)
                    if len(children) == MAX_MIND_MAP_CHILDREN:
                        break
            return MindMapNode(
                id=entity.id,
                label=entity.name,
                description=entity.description,
                color=colors.get(entity.id),
                source_ids=list(entity.source_ids),
                children=[build_node(child, depth + 1) for child in children],
            )

        return MindMap(title=root_topic, root=build_node(root_index, 0))

    def get_central_entities(self, graph: KnowledgeGraph, limit: int) -> list[Entity]:
        centrality = {entity.id: 0.0 for entity in graph.entities}
        for rel in graph.relationships:
            centrality[rel.source_entity_id] = centrality.get(rel.source_entity_id, 0.0) + rel.weight
            centrality[rel.target_entity_id] = centrality.get(rel.target_entity_id, 0.0) + rel.weight
        ranked = sorted(graph.entities, key=lambda e: centrality[e.id], reverse=True)
        return ranked[:limit]

    @staticmethod
    def _clusters(survivors: dict[str, Entity], contents: Sequence[AnalyzedContent]) -> list[Cluster]:
        by_topic: dict[str, dict[str, None]] = {}
        for content in contents:
            for topic in content.topics:
                members = by_topic.setdefault(topic, {})
                for entity in content.entities:
                    merged = survivors.get(entity.name.lower())
                    if merged is not None:
                        members[merged.id] = None

        return [
            Cluster(
                id=str(uuid.uuid4()),
                name=topic,
                entity_ids=list(members),
                color=CLUSTER_COLORS[i % len(CLUSTER_COLORS)],
            )
            for i, (topic, members) in enumerate(list(by_topic.items())[:MAX_CLUSTERS])
        ]
