# -*- coding: utf-8 -*-
"""
Microsoft authentication module for SharePoint list access.

This module handles Azure AD authentication using MSAL (Microsoft Authentication
Library) and returns the headers to merge into every SharePoint REST call.
"""

from urllib.parse import urlparse

import msal

from .errors import AuthenticationError


def sharepoint_scope(site_url):
    """
    Build the MSAL scope for a SharePoint site.

    Args:
        site_url (str): Site URL (e.g., "https://company.sharepoint.com/sites/Team")

    Returns:
        str: "https://company.sharepoint.com/.default"
    """
    parsed = urlparse(site_url)
    return f"{parsed.scheme or 'https'}://{parsed.netloc}/.default"


def acquire_token(site_url, client_id, tenant_id='organizations', login_endpoint='login.microsoftonline.com',
                  username=None, password=None, client_secret=None):
    """
    Acquire an access token for SharePoint from Azure Active Directory using MSAL.

    Two flows are supported:
        - Username/password (resource owner password credentials) through a
          public client application, when username and password are given
        - Client credentials through a confidential client application, when
          client_secret is given

    Args:
        site_url (str): SharePoint site URL, used to derive the token audience
        client_id (str): Application (client) ID from Azure AD app registration
        tenant_id (str): Azure AD tenant ID or 'organizations'
        login_endpoint (str): Azure AD authentication endpoint (e.g., 'login.microsoftonline.com')
        username (str): User principal name
        password (str): User password
        client_secret (str): Client secret value

    Returns:
        dict: Token dictionary containing 'access_token', 'token_type' and 'expires_in'

    Raises:
        AuthenticationError: If authentication fails (wrong credentials, consent missing, etc.)
    """
    authority_url = f'https://{login_endpoint}/{tenant_id}'
    scopes = [sharepoint_scope(site_url)]

    if username and password:
        app = msal.PublicClientApplication(client_id, authority=authority_url)
        token = app.acquire_token_by_username_password(username, password, scopes=scopes)
    elif client_secret:
        app = msal.ConfidentialClientApplication(
            client_id,
            authority=authority_url,
            client_credential=client_secret
        )
        token = app.acquire_token_for_client(scopes=scopes)
    else:
        raise AuthenticationError("Either username/password or client_secret must be provided")

    # MSAL returns errors in the token dict, not as exceptions
    if "access_token" not in token:
        error_msg = token.get("error", "unknown_error")
        error_desc = token.get("error_description", "No description provided")
        error_codes = token.get("error_codes", [])

        print("[!] ========================================")
        print("[!] AUTHENTICATION FAILED")
        print("[!] ========================================")

        if "invalid_grant" in error_msg:
            print("[!] Error: Invalid user credentials or interaction required")
            print("[!] ")
            print("[!] Troubleshooting steps:")
            print("[!]   1. Verify SHAREPOINT_USERNAME and SHAREPOINT_PASSWORD")
            print("[!]   2. Accounts with MFA cannot use the username/password flow")
            print("[!]   3. Federated accounts may need the client credentials flow instead")
        elif "invalid_client" in error_msg or 7000215 in error_codes:
            print("[!] Error: Invalid client credentials")
            print("[!] ")
            print("[!] Troubleshooting steps:")
            print("[!]   1. Verify SHAREPOINT_CLIENT_ID is correct")
            print("[!]   2. Verify SHAREPOINT_CLIENT_SECRET has not expired")
            print("[!]   3. Ensure you're using the correct SHAREPOINT_TENANT_ID")
        elif "unauthorized_client" in error_msg or 700016 in error_codes:
            print("[!] Error: Application not authorized")
            print("[!] ")
            print("[!] Troubleshooting steps:")
            print("[!]   1. Verify the app registration exists in this tenant")
            print("[!]   2. Grant the SharePoint AllSites.Write (delegated) or Sites.ReadWrite.All permission")
            print("[!]   3. Click 'Grant admin consent'")
        else:
            print(f"[!] Error: {error_msg}")
            print("[!] ")
            print("[!] Common issues:")
            print("[!]   - Network connectivity problems")
            print("[!]   - Incorrect tenant ID or login endpoint")
            if error_codes:
                print(f"[!]   Error codes: {error_codes}")

        print(f"[!] Technical details: {error_desc}")
        print("[!] ========================================")
        raise AuthenticationError(f"Authentication failed: {error_msg} - {error_desc}")

    return token


def authenticate(site_url, client_id, tenant_id='organizations', login_endpoint='login.microsoftonline.com',
                 username=None, password=None, client_secret=None):
    """
    Authenticate to SharePoint and return the headers for every request.

    Failures are surfaced to the caller and never retried here.

    Returns:
        dict: {'Authorization': '<token_type> <access_token>'}
    """
    token = acquire_token(
        site_url, client_id,
        tenant_id=tenant_id,
        login_endpoint=login_endpoint,
        username=username,
        password=password,
        client_secret=client_secret
    )
    return {'Authorization': f"{token.get('token_type', 'Bearer')} {token['access_token']}"}
