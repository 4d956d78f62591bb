"""Core shared logic for signal scoring, labelling, series statistics and models.

This package contains pure business logic with no I/O dependencies
(no database or network access). It is shared between the dashboard
backend (app/) and the backtesting system (backtest/).
"""
