"""core/ -- Configuration and database plumbing. Imports nothing from api/, web/ or auth/."""
