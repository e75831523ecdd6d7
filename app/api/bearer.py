from fastapi.security import HTTPBearer

# Define HTTP Bearer authentication schemes for different user roles
bearer_admin = HTTPBearer(scheme_name="Admin HTTPBearer")
bearer_driver = HTTPBearer(scheme_name="Driver HTTPBearer")
bearer_owner = HTTPBearer(scheme_name="Owner HTTPBearer")
bearer_passenger = HTTPBearer(scheme_name="Passenger HTTPBearer")
