"""Streamlit front end for subject enrollment.

Run with ``streamlit run strata_flow/app.py``.
"""
from __future__ import annotations

from pathlib import Path

import streamlit as st

from strata_flow.cli import DEFAULT_CONFIG, build_session, load_config
from strata_flow.errors import PersistenceError
from strata_flow.logging_utils import configure_logging
from strata_flow.strata import CategoricalDimension

configure_logging()

st.set_page_config(page_title="Randomization App", page_icon=":bar_chart:")


@st.cache_resource
def load_shared_session():
    """One session per server process, shared by every browser tab."""
    app_config = load_config(str(DEFAULT_CONFIG))
    return app_config, build_session(app_config)


def render_assignment_form(session) -> None:
    gender_dim = session.scheme.dimension("gender")
    with st.form("assignment_form", clear_on_submit=True):
        subject_id = st.text_input("Subject ID")
        name = st.text_input("Name (optional)")
        gender = st.selectbox("Gender", list(gender_dim.labels()))
        age = st.number_input("Age", min_value=0, max_value=120, value=50, step=1)
        attributes = {}
        for dim in session.extra_dimensions:
            label = dim.name.replace("_", " ").title()
            if isinstance(dim, CategoricalDimension):
                attributes[dim.name] = st.selectbox(label, list(dim.levels))
            else:
                attributes[dim.name] = int(st.number_input(label, min_value=0, value=0, step=1))
        submitted = st.form_submit_button("Assign Group")

    if not submitted:
        return
    if not subject_id.strip():
        st.warning("Please enter a Subject ID.")
        return
    try:
        record = session.enroll(subject_id, gender, int(age), name=name, **attributes)
    except PersistenceError as exc:
        st.error(f"Assigned but not saved to disk: {exc}")
        return
    except ValueError as exc:
        st.error(str(exc))
        return
    st.success(
        f"{record.subject_id} → [{session.scheme.label(record.strata)}] {record.group}"
    )


def render_sidebar(session) -> None:
    st.sidebar.header("Settings")
    block_size = st.sidebar.number_input(
        "Block size",
        min_value=len(session.config.groups),
        value=session.engine.block_size,
        step=1,
        help="Applies to blocks generated after the change.",
    )
    if int(block_size) != session.engine.block_size:
        session.set_block_size(int(block_size))
        st.sidebar.info(f"Block size set to {int(block_size)}")
    csv_path = session.storage.csv_path
    if csv_path is not None and Path(csv_path).exists():
        st.sidebar.download_button(
            "Download assignment log (CSV)",
            data=Path(csv_path).read_bytes(),
            file_name=Path(csv_path).name,
            mime="text/csv",
        )


def main() -> None:
    app_config, session = load_shared_session()
    title = app_config.get("project", "Stratified Block Randomization")
    st.title(title)

    render_sidebar(session)
    render_assignment_form(session)

    st.divider()
    st.subheader("Current Balance")
    st.dataframe(session.balance_table(), hide_index=True)

    st.subheader("Assignment Log")
    log = session.log_frame()
    if log.empty:
        st.info("No assignments yet.")
    else:
        st.dataframe(log, hide_index=True)


if __name__ == "__main__":
    main()
