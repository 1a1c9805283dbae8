"""
Clinical Trial Pre-Screening - Streamlit front end
Upload a protocol, review the extracted criteria, generate a phone script,
create a voice agent and place a pre-screening call
"""

import os
import httpx
import streamlit as st
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

API_URL = os.getenv("PRESCREEN_API_URL", "http://localhost:8000").rstrip("/")
REQUEST_TIMEOUT = 300.0

# Streamlit App Configuration
st.set_page_config(
    page_title="Clinical Trial Pre-Screening",
    page_icon="📞",
    layout="wide"
)
st.write("<h2 style='text-align: center;'>📞 Clinical Trial Pre-Screening</h2>", unsafe_allow_html=True)
st.write(
    "<p style='text-align: center; color: #666;'>Upload a clinical trial document to extract inclusion and "
    "exclusion criteria, then turn them into a phone pre-screening call</p>",
    unsafe_allow_html=True
)


def call_api(path, **kwargs):
    """POST to the pre-screening API, returning (data, error)"""
    try:
        response = httpx.post(f"{API_URL}{path}", timeout=REQUEST_TIMEOUT, **kwargs)
    except httpx.HTTPError as e:
        return None, f"Could not reach the API at {API_URL}: {str(e)}"

    try:
        data = response.json()
    except ValueError:
        return None, f"Unexpected response ({response.status_code}): {response.text[:200]}"

    if response.status_code >= 400:
        return None, data.get("error", f"Request failed with status {response.status_code}")
    return data, None


def criteria_to_text(criteria):
    return "\n".join(criteria or [])


def text_to_criteria(text):
    return [line.strip() for line in text.splitlines() if line.strip()]


def reset_from(stage):
    """Drop results downstream of the given stage"""
    order = ['criteria', 'script', 'agent', 'call']
    for key in order[order.index(stage):]:
        st.session_state.pop(key, None)


# Step 1: upload and extract
st.write("<h3>1. Upload Document</h3>", unsafe_allow_html=True)

uploaded_file = st.file_uploader(
    "Upload Document (PDF, DOCX, or TXT)",
    type=["pdf", "docx", "txt"],
    help="Clinical trial protocol containing the eligibility criteria"
)

if uploaded_file:
    st.text(f"Selected: {uploaded_file.name} ({len(uploaded_file.getvalue()) / 1024:.2f} KB)")

    if st.button("🔍 Extract Criteria", type="primary", use_container_width=True):
        reset_from('criteria')
        with st.spinner("Processing document..."):
            data, error = call_api(
                "/api/extract-criteria",
                files={"file": (uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type)},
            )
        if error:
            st.error(f"❌ {error}")
        else:
            st.session_state['criteria'] = data

if 'criteria' in st.session_state:
    result = st.session_state['criteria']
    criteria = result.get('criteria', {})

    st.markdown(f"#### {result.get('fileName', '')}")
    with st.expander("📄 Document Preview"):
        st.text(result.get('documentPreview', ''))

    col1, col2 = st.columns(2)
    with col1:
        inclusion_text = st.text_area(
            "Inclusion Criteria (one per line)",
            value=criteria_to_text(criteria.get('inclusion')),
            height=300,
        )
        if not criteria.get('inclusion'):
            st.caption("No inclusion criteria found")
    with col2:
        exclusion_text = st.text_area(
            "Exclusion Criteria (one per line)",
            value=criteria_to_text(criteria.get('exclusion')),
            height=300,
        )
        if not criteria.get('exclusion'):
            st.caption("No exclusion criteria found")

    # Step 2: generate the script
    st.markdown("---")
    st.write("<h3>2. Generate Pre-Screening Script</h3>", unsafe_allow_html=True)
    study_name = st.text_input("Study Name", value=st.session_state.get('study_name', ''))
    st.session_state['study_name'] = study_name

    if st.button("📝 Generate Script", use_container_width=True):
        reset_from('script')
        with st.spinner("Generating script..."):
            data, error = call_api(
                "/api/generate-script",
                json={
                    "inclusion": text_to_criteria(inclusion_text),
                    "exclusion": text_to_criteria(exclusion_text),
                    "studyName": study_name,
                },
            )
        if error:
            st.error(f"❌ {error}")
        else:
            st.session_state['script'] = data['script']

if 'script' in st.session_state:
    script = st.text_area(
        "Voice Agent Script (editable)",
        value=st.session_state['script'],
        height=400,
    )

    # Step 3: create the voice agent
    st.markdown("---")
    st.write("<h3>3. Create Voice Agent</h3>", unsafe_allow_html=True)

    if st.button("🤖 Create Voice Agent", use_container_width=True):
        reset_from('agent')
        with st.spinner("Creating voice agent..."):
            data, error = call_api(
                "/api/create-voice-agent",
                json={"script": script, "studyName": st.session_state.get('study_name', '')},
            )
        if error:
            st.error(f"❌ {error}")
        else:
            st.session_state['agent'] = data

if 'agent' in st.session_state:
    agent = st.session_state['agent']
    st.success(f"✅ {agent.get('message', 'Voice agent created')}")
    st.markdown(f"Agent ID: `{agent['agentId']}` | [Open in ElevenLabs]({agent['agentUrl']})")

    # Step 4: place the call
    st.markdown("---")
    st.write("<h3>4. Place Pre-Screening Call</h3>", unsafe_allow_html=True)
    phone_number = st.text_input(
        "Phone Number",
        placeholder="+15551234567",
        help="Numbers without a leading '+' are treated as US numbers"
    )

    if st.button("📞 Call Now", use_container_width=True, disabled=not phone_number):
        reset_from('call')
        with st.spinner("Initiating call..."):
            data, error = call_api(
                "/api/initiate-call",
                json={"phoneNumber": phone_number, "agentId": agent['agentId']},
            )
        if error:
            st.error(f"❌ {error}")
        else:
            st.session_state['call'] = data

if 'call' in st.session_state:
    call = st.session_state['call']
    st.success(f"✅ {call.get('message', 'Call initiated')}")
    st.text(f"Conversation ID: {call.get('conversationId')}")
    if call.get('callSid'):
        st.text(f"Call SID: {call.get('callSid')}")

# Footer
st.markdown("---")
st.markdown(
    """
    <div style='text-align: center; color: #666; font-size: 0.8em;'>
    📞 Clinical Trial Pre-Screening | Criteria extraction with Gemini | Voice calls with ElevenLabs
    </div>
    """,
    unsafe_allow_html=True
)
