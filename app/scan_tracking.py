"""
Scan tracking service for saving and browsing a user's analysis history.
"""
import logging
import math
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any, Union
from sqlalchemy import and_, desc
from app.database import Scan, SCAN_TYPES, get_db, close_db
from app.models import AnalysisResult, MenuAnalysisResult

logger = logging.getLogger(__name__)

ScanResult = Union[AnalysisResult, MenuAnalysisResult, Dict[str, Any]]

def scan_to_dict(scan: Scan) -> Dict[str, Any]:
    """Convert Scan row to dictionary format for the UI"""
    return {
        'id': scan.id,
        'scan_type': scan.scan_type,
        'input_text': scan.input_text,
        'result': scan.result,
        'safety_rating': scan.safety_rating,
        'meal_name': scan.meal_name,
        'file_size': scan.file_size,
        'mime_type': scan.mime_type,
        'analysis_time_ms': scan.analysis_time_ms,
        'ai_model': scan.ai_model,
        'created_at': scan.created_at,
    }

class ScanTrackingService:
    """Handles saving, listing and deleting scans"""

    @staticmethod
    def save_scan(
        user_id: int,
        scan_type: str,
        result: ScanResult,
        input_text: Optional[str] = None,
        file_size: Optional[int] = None,
        mime_type: Optional[str] = None,
        analysis_time_ms: Optional[int] = None,
        ai_model: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Store a result verbatim together with its metadata"""
        if scan_type not in SCAN_TYPES:
            logger.warning(f"Refusing to save scan with unknown type: {scan_type}")
            return None

        payload = result if isinstance(result, dict) else result.to_dict()
        safety_rating = None
        meal_name = None
        if scan_type != "menu":
            safety_rating = payload.get('safetyRating')
            meal_name = payload.get('mealName')
        elif input_text:
            meal_name = "Menu Analysis"

        db = get_db()
        try:
            scan = Scan(
                user_id=user_id,
                scan_type=scan_type,
                input_text=input_text,
                result=payload,
                safety_rating=safety_rating,
                meal_name=meal_name,
                file_size=file_size,
                mime_type=mime_type,
                analysis_time_ms=analysis_time_ms,
                ai_model=ai_model,
            )

            db.add(scan)
            db.commit()
            db.refresh(scan)

            logger.info(f"Scan saved for user {user_id}: {scan_type} {meal_name or ''}".rstrip())
            return scan_to_dict(scan)

        except Exception as e:
            db.rollback()
            logger.error(f"Error saving scan: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def get_scan_history(user_id: int, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Get one page of scans, newest first, with pagination info"""
        page = max(1, int(page))
        limit = max(1, int(limit))
        empty = {'scans': [], 'pagination': {'page': page, 'limit': limit, 'total': 0, 'pages': 0}}

        db = get_db()
        try:
            query = db.query(Scan).filter(Scan.user_id == user_id)
            total = query.count()
            scans = (
                query.order_by(desc(Scan.created_at), desc(Scan.id))
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                'scans': [scan_to_dict(s) for s in scans],
                'pagination': {
                    'page': page,
                    'limit': limit,
                    'total': total,
                    'pages': math.ceil(total / limit),
                },
            }

        except Exception as e:
            logger.error(f"Error getting scan history: {e}")
            return empty
        finally:
            close_db(db)

    @staticmethod
    def get_scan_by_id(scan_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """Get a single scan; other users' scans are not visible"""
        db = get_db()
        try:
            scan = db.query(Scan).filter(
                and_(Scan.id == scan_id, Scan.user_id == user_id)
            ).first()
            return scan_to_dict(scan) if scan else None
        except Exception as e:
            logger.error(f"Error getting scan {scan_id}: {e}")
            return None
        finally:
            close_db(db)

    @staticmethod
    def delete_scan(scan_id: int, user_id: int) -> bool:
        """Delete a scan owned by the user"""
        db = get_db()
        try:
            scan = db.query(Scan).filter(
                and_(Scan.id == scan_id, Scan.user_id == user_id)
            ).first()

            if not scan:
                logger.warning(f"Scan not found for deletion: {scan_id}")
                return False

            for chat in scan.chats:
                chat.scan_id = None
            db.delete(scan)
            db.commit()

            logger.info(f"Scan {scan_id} deleted for user {user_id}")
            return True

        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting scan: {e}")
            return False
        finally:
            close_db(db)

    @staticmethod
    def get_recent_scans(user_id: int, days: int = 30) -> List[Dict[str, Any]]:
        """Get all scans from the last `days` days, newest first"""
        db = get_db()
        try:
            cutoff_date = datetime.now(timezone.utc) - timedelta(days=days)
            scans = db.query(Scan).filter(
                and_(
                    Scan.user_id == user_id,
                    Scan.created_at >= cutoff_date
                )
            ).order_by(desc(Scan.created_at), desc(Scan.id)).all()
            return [scan_to_dict(s) for s in scans]

        except Exception as e:
            logger.error(f"Error getting recent scans: {e}")
            return []
        finally:
            close_db(db)
