"""Demo seed data (`grid_seed.yaml`) and the loader that turns it into live stores."""
