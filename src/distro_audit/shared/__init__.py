"""Cross-cutting helpers shared by the domain, engine and infrastructure layers."""
