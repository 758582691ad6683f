import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from services.models import WorkItem
from services.settings import MAX_WORK_ITEMS_LIMIT, Relations

logger = logging.getLogger(__name__)


def chunk_ids(ids: Sequence[int], size: int) -> List[List[int]]:
    """Split ids into consecutive chunks of at most size elements"""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


class HierarchyTraverser:
    """
    Breadth-first walk of a work item tree collecting its Task/Bug leaves

    Each level's children are fetched in batches of at most max_batch_size ids,
    all batches of a level running concurrently. Containers become the next
    level; leaves are collected.
    """

    def __init__(self, client, max_batch_size: int = MAX_WORK_ITEMS_LIMIT, max_workers: int = 8):
        self.client = client
        self.max_batch_size = max_batch_size
        self.max_workers = max_workers

    def traverse(self, root_id: int) -> Optional[List[WorkItem]]:
        """
        Collect the leaves under a work item

        Returns:
            The leaf work items, or None when the root does not exist
        """
        root = self.client.get_work_item_with_relations(root_id)
        if root is None:
            return None
        return self.traverse_from(root)

    def traverse_from(self, root: WorkItem) -> List[WorkItem]:
        if root.is_leaf:
            logger.info(f"Work item {root.id} is a {root.work_item_type}, nothing to traverse")
            return [root]

        leaves: List[WorkItem] = []
        frontier = [root]
        visited = {root.id}
        level = 0

        while frontier:
            level += 1
            child_ids = self._collect_child_ids(frontier, visited)
            if not child_ids:
                break

            loaded = self._fetch_level(child_ids)
            frontier = [item for item in loaded if not item.is_leaf]
            level_leaves = [item for item in loaded if item.is_leaf]
            leaves.extend(level_leaves)

            logger.info(f"Level {level}: requested {len(child_ids)} children, "
                        f"loaded {len(level_leaves)} leaves and {len(frontier)} containers")

        logger.info(f"Traversal of work item {root.id} complete: {len(leaves)} leaves over {level} levels")
        return leaves

    def _collect_child_ids(self, frontier: List[WorkItem], visited: set) -> List[int]:
        child_ids = []
        for item in frontier:
            for relation in item.relations_of(Relations.CHILDREN):
                child_id = relation.target_id
                if child_id in visited:
                    logger.warning(f"Work item {child_id} reached again from {item.id}, skipping")
                    continue
                visited.add(child_id)
                child_ids.append(child_id)
        return child_ids

    def _fetch_level(self, child_ids: List[int]) -> List[WorkItem]:
        chunks = chunk_ids(child_ids, self.max_batch_size)
        results: List[Optional[List[WorkItem]]] = [None] * len(chunks)

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunks))) as executor:
            futures = {
                executor.submit(self.client.get_work_items_batch, chunk): index
                for index, chunk in enumerate(chunks)
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:
                for pending in futures:
                    pending.cancel()
                raise

        # Merge in chunk order so the output does not depend on completion order
        return [item for chunk_items in results for item in chunk_items]
