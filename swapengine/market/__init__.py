"""
Market data: token price, liquidity and venue flags.
"""
from .token_info import TokenInfoService, pair_to_token_info, select_best_pair

__all__ = ['TokenInfoService', 'pair_to_token_info', 'select_best_pair']
