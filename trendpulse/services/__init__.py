"""Domain services: resolution, scoring, decay, sections and jobs."""
