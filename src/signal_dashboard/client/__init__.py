"""Client-side views over the dashboard API: calendar week view and chat."""
