# digital_twin/streamlit_app.py
import os
import time
import base64
import json
import logging
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

from digital_twin.agent.lg_controller import TwinController
from digital_twin.services.ingest_index import ensure_index
from digital_twin.services.settings import SUBJECT_NAME

logging.basicConfig(level=os.getenv("APP_LOG_LEVEL", "INFO"))
logger = logging.getLogger("digital_twin")


# ---------- env & page ----------
load_dotenv()
st.set_page_config(
    page_title=f"Chat with {SUBJECT_NAME}",
    layout="centered",
    initial_sidebar_state="expanded",
)

APP_DIR = Path(__file__).resolve().parent
REPO_ROOT = APP_DIR.parent
STATIC_DIR = Path(os.getenv("STATIC_DIR", REPO_ROOT / "static"))


def _read_image_b64(path: Path) -> str:
    try:
        with open(path, "rb") as f:
            return base64.b64encode(f.read()).decode("utf-8")
    except OSError as e:
        logger.warning("Image missing/unreadable: %s (%s)", path, e)
        return ""


headshot_b64 = _read_image_b64(STATIC_DIR / "headshot.png") if (STATIC_DIR / "headshot.png").exists() else ""

# ---------- styles ----------
st.markdown(
    """
    <style>
    .header-container { text-align: center; margin-bottom: 1rem; }
    .subtitle { font-size: 18px; color: #555555; margin-top: 5px; }
    .confidence-high { color: #2e7d32; font-weight: 600; }
    .confidence-mid  { color: #f9a825; font-weight: 600; }
    .confidence-low  { color: #c62828; font-weight: 600; }
    </style>
    """,
    unsafe_allow_html=True,
)

# ---------- sidebar ----------
with st.sidebar:
    if headshot_b64:
        st.image(f"data:image/png;base64,{headshot_b64}", width=160, caption=SUBJECT_NAME)
    if st.button("Clear conversation"):
        st.session_state.messages = []

# ---------- ensure static embeddings once ----------
@st.cache_resource(show_spinner="Preparing personal data…")
def _controller() -> TwinController:
    try:
        ensure_index()
    except Exception as e:
        # the store falls back per query; the UI should still load
        logger.warning("Static embeddings not ready: %s", e)
    return TwinController()


controller = _controller()

if "messages" not in st.session_state:
    st.session_state.messages = []

# ---------- header ----------
st.markdown(
    f"""
    <div class="header-container">
        <h1 style="margin-bottom: 0;">Chat with {SUBJECT_NAME}</h1>
        <p class="subtitle">Answers come from my resume and my calendar, in my own voice.</p>
    </div>
    """,
    unsafe_allow_html=True,
)


def _confidence_badge(confidence: float) -> str:
    css = "confidence-high" if confidence >= 0.7 else "confidence-mid" if confidence >= 0.4 else "confidence-low"
    return f'<span class="{css}">Confidence: {confidence * 100:.0f}%</span>'


def _render_sources(sources) -> None:
    if not sources:
        return
    with st.expander(f"Sources ({len(sources)})"):
        for i, src in enumerate(sources, start=1):
            st.markdown(f"**[{i}] {src['type']}** · score {src['relevance_score']:.3f}  \n{src['snippet']}")


# ---------- history ----------
for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        st.markdown(msg["content"])
        if msg["role"] == "assistant":
            st.markdown(_confidence_badge(msg.get("confidence", 0.0)), unsafe_allow_html=True)
            _render_sources(msg.get("sources"))

# ---------- handle input ----------
question = st.chat_input("Ask me anything about my work or schedule")
if question and question.strip():
    history = [{"role": m["role"], "content": m["content"]} for m in st.session_state.messages]
    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        try:
            result = controller.respond(question.strip(), history=history)
        except Exception as e:
            st.error(f"Failed to process message: {e}")
            raise

        logger.debug("TRACE:\n%s", json.dumps(result.get("trace"), indent=2, ensure_ascii=False, default=str))

        # one chunk at a time, like a sequence of chat bubbles
        for chunk in result["chunks"]:
            st.markdown(chunk)
            time.sleep(0.3)
        st.markdown(_confidence_badge(result["confidence"]), unsafe_allow_html=True)
        _render_sources(result["sources"])

    st.session_state.messages.append({
        "role": "assistant",
        "content": result["answer"],
        "confidence": result["confidence"],
        "sources": result["sources"],
    })
