"""Technical analysis API endpoints."""

from fastapi import APIRouter, HTTPException
import logging

from models.technicals import (
    AnalysisRequest, AnalysisResponse,
    IndicatorsRequest, IndicatorsResponse,
    PatternDetectionRequest, PatternDetectionResponse,
    VolumeProfileRequest, VolumeProfileResponse,
)
from services.technical_analyzer import TechnicalAnalyzer

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/analysis", response_model=AnalysisResponse)
async def full_analysis(request: AnalysisRequest):
    """Run the full technical analysis pipeline."""
    try:
        report = TechnicalAnalyzer().analyze(
            request.points,
            include_volume_profile=request.include_volume_profile,
            include_bullishness=request.include_bullishness,
        )
        return AnalysisResponse(ticker=request.ticker, report=report)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Technical analysis failed for {request.ticker}")
        raise HTTPException(status_code=500, detail="Technical analysis failed")


@router.post("/indicators", response_model=IndicatorsResponse)
async def compute_indicators(request: IndicatorsRequest):
    """Compute the indicator series for the given price history."""
    try:
        indicators = TechnicalAnalyzer().compute_indicators(request.points)
        return IndicatorsResponse(ticker=request.ticker, indicators=indicators)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Indicator computation failed for {request.ticker}")
        raise HTTPException(status_code=500, detail="Indicator computation failed")


@router.post("/patterns", response_model=PatternDetectionResponse)
async def detect_patterns(request: PatternDetectionRequest):
    """Detect, rank and group chart patterns."""
    try:
        patterns, groups, scanned = TechnicalAnalyzer().detect_patterns(
            request.points, families=request.families, max_patterns=request.max_patterns,
        )
        return PatternDetectionResponse(
            ticker=request.ticker,
            patterns=patterns,
            groups=groups,
            candidates_scanned=scanned,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Pattern detection failed for {request.ticker}")
        raise HTTPException(status_code=500, detail="Pattern detection failed")


@router.post("/volume-profile", response_model=VolumeProfileResponse)
async def volume_profile(request: VolumeProfileRequest):
    """Volume profile, OBV, A/D line, spikes and divergences."""
    try:
        analysis = TechnicalAnalyzer().analyze_volume(request.points)
        return VolumeProfileResponse(ticker=request.ticker, analysis=analysis)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Volume analysis failed for {request.ticker}")
        raise HTTPException(status_code=500, detail="Volume analysis failed")
