"""web/ -- Server-rendered HTML routes and error views for Doorman."""
