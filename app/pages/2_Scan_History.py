"""
Scan history and insights page.
"""
import streamlit as st
import sys
import os

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.auth import is_authenticated, get_current_user_id, get_current_display_name
from app.config import SAFETY_LABELS
from app.reporting import ReportingService
from app.scan_tracking import ScanTrackingService
import logging

logger = logging.getLogger(__name__)

PAGE_SIZE = 10
SCAN_TYPE_ICONS = {"image": "📷", "menu": "📋", "text": "✍️"}

def show_history_page():
    """Display scan history and insights"""
    st.set_page_config(page_title="🗂️ Scan History", page_icon="🗂️", layout="wide")

    if not is_authenticated():
        st.error("Please login to see your scans")
        if st.button("Go to Login"):
            st.switch_page("pages/1_Login.py")
        return

    user_id = get_current_user_id()
    if not user_id:
        st.error("Invalid user session. Please login again.")
        return

    st.title(f"🗂️ Scan History - {get_current_display_name()}")

    tab1, tab2 = st.tabs(["📜 Scans", "📈 Insights"])
    with tab1:
        show_scan_list(user_id)
    with tab2:
        show_insights(user_id)

def show_scan_list(user_id: int):
    if 'history_page' not in st.session_state:
        st.session_state.history_page = 1

    history = ScanTrackingService.get_scan_history(user_id, st.session_state.history_page, PAGE_SIZE)
    pagination = history['pagination']

    if not history['scans']:
        st.info("No scans yet. Analyze a meal or menu on the main page.")
        return

    for scan in history['scans']:
        icon = SCAN_TYPE_ICONS.get(scan['scan_type'], "🍽️")
        label = SAFETY_LABELS.get(scan['safety_rating'], "Menu") if scan['safety_rating'] else "Menu"
        created = scan['created_at'].strftime("%Y-%m-%d %H:%M") if scan['created_at'] else ""
        with st.expander(f"{icon} {scan['meal_name'] or 'Scan'} · {label} · {created}"):
            result = scan['result'] or {}
            if scan['scan_type'] == "menu":
                for key, title in (('safeOptions', "Safe"), ('moderateOptions', "Moderate"), ('riskyOptions', "Risky")):
                    names = ", ".join(o['name'] for o in result.get(key, [])) or "-"
                    st.markdown(f"**{title}:** {names}")
            else:
                st.markdown(f"**Warnings:** {', '.join(result.get('allergyWarnings', [])) or 'None'}")
                st.markdown(f"**Ingredients:** {', '.join(result.get('ingredients', []))}")
            st.caption(result.get('recommendation', ''))
            st.caption(f"Model: {scan['ai_model'] or 'unknown'} · {scan['analysis_time_ms'] or 0} ms")
            if st.button("Delete", key=f"delete_scan_{scan['id']}"):
                if ScanTrackingService.delete_scan(scan['id'], user_id):
                    st.success("Scan deleted")
                    st.rerun()
                else:
                    st.error("Could not delete scan")

    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if pagination['page'] > 1 and st.button("⬅️ Newer"):
            st.session_state.history_page -= 1
            st.rerun()
    with col2:
        st.caption(f"Page {pagination['page']} of {pagination['pages']} · {pagination['total']} scans")
    with col3:
        if pagination['page'] < pagination['pages'] and st.button("Older ➡️"):
            st.session_state.history_page += 1
            st.rerun()

def show_insights(user_id: int):
    days = st.selectbox("Period", [7, 30, 90], index=1, format_func=lambda d: f"Last {d} days")

    with st.spinner("Generating insights..."):
        report = ReportingService.generate_history_report(user_id, days)

    if not report:
        st.warning("No scans in the selected period.")
        return

    summary = report['summary']
    by_rating = report['by_rating']
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total scans", summary['total_scans'])
    col2.metric("Safe", by_rating.get('green', 0))
    col3.metric("Caution", by_rating.get('yellow', 0))
    col4.metric("Avoid", by_rating.get('red', 0))

    for insight in report['insights']:
        st.markdown(f"- {insight}")

    charts = report['charts']
    col5, col6 = st.columns(2)
    if 'rating_distribution' in charts:
        col5.plotly_chart(charts['rating_distribution'], use_container_width=True)
    if 'daily_scans' in charts:
        col6.plotly_chart(charts['daily_scans'], use_container_width=True)

    if report['top_warnings']:
        st.markdown("#### Most frequent warnings")
        for item in report['top_warnings']:
            st.markdown(f"- {item['warning']} ({item['count']})")

if __name__ == "__main__":
    show_history_page()
