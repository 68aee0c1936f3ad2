from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class Entity(BaseModel):
    id: str
    name: str
    type: str = "concept"
    description: Optional[str] = None
    aliases: list[str] = []
    source_ids: list[str] = []
    confidence: float = Field(default=0.5, ge=0, le=1)
    metadata: dict[str, Any] = {}


class Relationship(BaseModel):
    id: str
    source_entity_id: str
    target_entity_id: str
    type: str = "related_to"
    label: Optional[str] = None
    weight: float = Field(default=0.5, ge=0, le=1)
    source_ids: list[str] = []


class Cluster(BaseModel):
    id: str
    name: str
    entity_ids: list[str] = []
    color: Optional[str] = None


class KnowledgeGraph(BaseModel):
    entities: list[Entity] = []
    relationships: list[Relationship] = []
    clusters: list[Cluster] = []


class MindMapNode(BaseModel):
    id: str
    label: str
    description: Optional[str] = None
    children: list[MindMapNode] = []
    color: Optional[str] = None
    source_ids: list[str] = []

    def depth(self) -> int:
        """Number of edges on the longest root-to-leaf path."""
        if not self.children:
            return 0
        return 1 + max(child.depth() for child in self.children)

    def iter_nodes(self):
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class MindMap(BaseModel):
    title: str
    root: MindMapNode


class GraphBuildOptions(BaseModel):
    min_entity_confidence: float = 0.6
    min_relationship_weight: float = 0.4
    max_nodes: int = 100
    cluster_by_topic: bool = True
