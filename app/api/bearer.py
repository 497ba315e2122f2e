from fastapi.security import HTTPBearer

# Define HTTP Bearer authentication schemes for different user roles
bearer_admin = HTTPBearer(scheme_name="Admin HTTPBearer")
bearer_client = HTTPBearer(scheme_name="Client HTTPBearer")
bearer_provider = HTTPBearer(scheme_name="Provider HTTPBearer")
