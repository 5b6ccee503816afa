# api - server tier adapter (job queue + REST endpoints) around mini_bridge
