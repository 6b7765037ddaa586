"""
modules/ranking/result_blender.py

Weighted blending of result lists from several search strategies.

Each distinct result id gets the weighted mean of the scores it received,
plus a flat bonus when more than one strategy returned it. Inputs are
never mutated: blended results are copies carrying `blending_info`.
"""

import copy
from typing import Any, Dict, List

from loguru import logger

from config.settings import MAX_RESULTS, MULTI_STRATEGY_BONUS
from models.schemas import SearchResult, StrategyResultSet


class ResultBlender:
    def blend(
        self,
        strategy_results: List[StrategyResultSet],
        max_results: int = MAX_RESULTS,
    ) -> List[SearchResult]:
        """
        Args:
            strategy_results: One StrategyResultSet per strategy that succeeded
            max_results:      Length of the returned list

        Returns:
            Copies of the input results, re-scored and sorted best first.
        """
        collected: Dict[str, Dict[str, Any]] = {}

        for result_set in strategy_results:
            for result in result_set.results:
                entry = collected.get(result.id)
                if entry is None:
                    entry = {"result": copy.deepcopy(result), "scores": []}
                    collected[result.id] = entry
                entry["scores"].append({
                    "strategy": result_set.strategy_name,
                    "score":    result.relevance_score,
                    "weight":   result_set.weight,
                })

        blended: List[SearchResult] = []
        for entry in collected.values():
            scores = entry["scores"]
            total_weight = sum(s["weight"] for s in scores)
            if total_weight > 0:
                weighted = sum(s["score"] * s["weight"] for s in scores) / total_weight
            else:
                weighted = sum(s["score"] for s in scores) / len(scores)
            bonus = MULTI_STRATEGY_BONUS if len(scores) > 1 else 0.0

            result: SearchResult = entry["result"]
            result.relevance_score = min(weighted + bonus, 1.0)
            result.blending_info = {
                "strategies":      [s["strategy"] for s in scores],
                "original_scores": scores,
                "blended_score":   weighted,
                "strategy_bonus":  bonus,
            }
            blended.append(result)

        blended.sort(key=lambda r: r.relevance_score, reverse=True)

        logger.debug(
            f"Blended {len(blended)} unique results from "
            f"{[s.strategy_name for s in strategy_results]}"
        )
        return blended[:max_results]
