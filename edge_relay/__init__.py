"""Edge relay between the browser and the backend API origin."""
