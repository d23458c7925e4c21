"""
CoT events: event / point / detail model with XML parse and serialize.

Property of Uncompromising Sensors LLC.
"""

from .cotEvent import (
    CotEvent,
    CotDetail,
    CotPoint,
    CotParseError,
    formatCotTime,
    parseCotTime,
    addMinutes
)

__all__ = ['CotEvent', 'CotDetail', 'CotPoint', 'CotParseError',
           'formatCotTime', 'parseCotTime', 'addMinutes']
