"""
Reporting service for scan history insights.
"""
import logging
import pandas as pd
import plotly.express as px
from collections import Counter
from typing import Dict, Any, List
from app.config import SAFETY_COLORS
from app.scan_tracking import ScanTrackingService

logger = logging.getLogger(__name__)

class ReportingService:
    """Handles report generation and analytics"""

    @staticmethod
    def generate_history_report(user_id: int, days: int = 30) -> Dict[str, Any]:
        """Summarize the user's scans over the last `days` days"""
        try:
            scans = ScanTrackingService.get_recent_scans(user_id, days)
            if not scans:
                return {}

            df = pd.DataFrame(scans)
            df['created_at'] = pd.to_datetime(df['created_at'])
            df['date'] = df['created_at'].dt.date

            rated = df[df['safety_rating'].notna()]
            by_rating = {rating: int((rated['safety_rating'] == rating).sum()) for rating in SAFETY_COLORS}
            by_type = {k: int(v) for k, v in df['scan_type'].value_counts().items()}
            per_day = df.groupby('date').size().reset_index(name='scans')

            top_warnings = ReportingService._top_warnings(scans)
            insights = ReportingService._generate_insights(by_rating, len(scans))
            charts = ReportingService._create_charts(by_rating, per_day)

            return {
                'period': f"Last {days} days",
                'summary': {
                    'total_scans': len(scans),
                    'days_with_scans': int(per_day.shape[0]),
                },
                'by_rating': by_rating,
                'by_type': by_type,
                'top_warnings': top_warnings,
                'daily_scans': [
                    {'date': str(row.date), 'scans': int(row.scans)} for row in per_day.itertuples()
                ],
                'insights': insights,
                'charts': charts,
            }

        except Exception as e:
            logger.error(f"Error generating history report: {e}")
            return {}

    @staticmethod
    def _top_warnings(scans: List[Dict[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
        counter: Counter = Counter()
        for scan in scans:
            result = scan.get('result') or {}
            for warning in result.get('allergyWarnings') or []:
                counter[warning] += 1
        return [{'warning': w, 'count': c} for w, c in counter.most_common(limit)]

    @staticmethod
    def _generate_insights(by_rating: Dict[str, int], total: int) -> List[str]:
        """Generate insights for the history report"""
        insights = []
        rated = sum(by_rating.values())
        if rated == 0:
            insights.append("📋 Only menu scans so far. Scan a meal to see safety trends.")
            return insights

        red_share = by_rating.get('red', 0) / rated * 100
        green_share = by_rating.get('green', 0) / rated * 100
        if red_share >= 30:
            insights.append(f"⚠️ {red_share:.0f}% of your scanned meals were rated unsafe. Double-check orders with staff.")
        elif green_share >= 60:
            insights.append("✅ Most of your scanned meals matched your dietary profile.")
        if by_rating.get('yellow', 0) > 0:
            insights.append("🔍 Meals rated caution need ingredient verification before eating.")
        if total >= 10:
            insights.append("📊 Great scanning consistency!")
        return insights

    @staticmethod
    def _create_charts(by_rating: Dict[str, int], per_day: pd.DataFrame) -> Dict[str, Any]:
        """Create Plotly figures for the report"""
        charts = {}

        try:
            rating_df = pd.DataFrame(
                {'rating': list(by_rating.keys()), 'scans': list(by_rating.values())}
            )
            charts['rating_distribution'] = px.pie(
                rating_df, names='rating', values='scans', color='rating',
                color_discrete_map=SAFETY_COLORS, title="Safety ratings",
            )
            charts['daily_scans'] = px.bar(per_day, x='date', y='scans', title="Scans per day")

        except Exception as e:
            logger.error(f"Error creating charts: {e}")

        return charts
