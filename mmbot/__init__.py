"""
mmbot - order lifecycle and strategy decision engine.

Ladder market making with exchange reconciliation, plus a volume booster
driven by a small family of side/size/delay policies.
"""

__version__ = "0.1.0"
