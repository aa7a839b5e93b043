import streamlit as st

from log import get_logger

logger = get_logger(__name__)


def normalize_user(user_obj):
    if not user_obj:
        return None
    return {"id": getattr(user_obj, "id", None), "email": getattr(user_obj, "email", None)}


def login(client):
    st.title("Login or Register")
    email = st.text_input("Email")
    password = st.text_input("Password", type="password")
    action = st.radio("Action", ["Login", "Register"])

    if st.button(action):
        try:
            if action == "Login":
                user_response = client.auth.sign_in_with_password({"email": email, "password": password})
            else:
                user_response = client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            # gotrue raises several unrelated error types for bad credentials
            logger.warning(f"{action} failed for {email}: {e}")
            st.error(f"Error: {e}")
            return
        st.session_state.user = normalize_user(getattr(user_response, "user", None))
        if st.session_state.user and st.session_state.user["id"]:
            st.success(f"{action} successful!")
            st.rerun()
        else:
            st.error(f"{action} failed. Check credentials.")


def logout(client):
    try:
        client.auth.sign_out()
    except Exception as e:
        logger.info(f"Sign out failed, clearing session anyway: {e}")
    for key in list(st.session_state.keys()):
        del st.session_state[key]
    st.rerun()
