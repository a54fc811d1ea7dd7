"""Sample comparison served by the demo endpoint."""

DEMO_ANALYSIS_RESULT = {
    "sections": [
        {
            "title": "1. Definitions",
            "match": 90,
            "differences": "Minor wording differences in definition of 'Confidential Information'",
        },
        {
            "title": "2. Confidential Information",
            "match": 75,
            "differences": "Customer NDA requires written authorization for any disclosure, while reference allows verbal consent in emergencies",
        },
        {
            "title": "3. Term and Termination",
            "match": 60,
            "differences": "Extended term to 5 years with automatic renewal vs. standard 3-year term",
        },
        {
            "title": "4. Return of Information",
            "match": 85,
            "differences": "Additional requirement for certified destruction of digital copies",
        },
        {
            "title": "5. Remedies",
            "match": 45,
            "differences": "Includes liquidated damages clause of $100,000 minimum plus attorney fees",
        },
    ],
    "risks": [
        {
            "section": "Term and Termination",
            "severity": "high",
            "title": "Extended 5-Year Term with Auto-Renewal",
            "description": "The customer NDA extends the confidentiality period to 5 years with automatic renewal, significantly longer than the standard 3-year term.",
            "recommendation": "Negotiate to reduce the term to 3 years and remove automatic renewal clause, or add specific termination conditions.",
        },
        {
            "section": "Remedies",
            "severity": "high",
            "title": "Liquidated Damages Clause",
            "description": "Customer NDA includes a minimum $100,000 liquidated damages clause plus attorney fees for any breach.",
            "recommendation": "Request removal of liquidated damages or negotiate a more reasonable cap based on actual potential damages.",
        },
        {
            "section": "Confidential Information",
            "severity": "medium",
            "title": "Written Authorization Requirement",
            "description": "All disclosures must be in writing, which may hinder emergency communications or normal business operations.",
            "recommendation": "Add exception for emergency situations or verbal authorizations confirmed in writing within 48 hours.",
        },
        {
            "section": "Return of Information",
            "severity": "low",
            "title": "Certified Destruction Requirement",
            "description": "Requires certified destruction of digital copies, which is stricter than standard return provisions.",
            "recommendation": "This is acceptable as it provides additional security assurance.",
        },
    ],
    "summary": {
        "overallRisk": "high",
        "keyIssues": [
            "Extended 5-year confidentiality term",
            "Automatic renewal clause",
            "High liquidated damages ($100K minimum)",
            "Restrictive written authorization requirement",
        ],
        "recommendation": "Negotiate key terms before signing. The extended term and liquidated damages present significant business risks.",
    },
}

DEMO_REFERENCE_NDA = {
    "fileName": "Standard_Company_NDA_v2.1.pdf",
    "documentType": "referenceNda",
    "parsedContent": {
        "text": (
            "NON-DISCLOSURE AGREEMENT This Non-Disclosure Agreement is entered into between Company and the receiving party. "
            "Definitions: Confidential Information means any proprietary information, trade secrets, technical data, business plans, "
            "customer lists, financial information, or other sensitive information disclosed by either party. "
            "Term: This agreement shall remain in effect for three (3) years from the date of execution. "
            "Obligations: The receiving party agrees to maintain the confidentiality of all Confidential Information and use it solely "
            "for the intended business purpose. "
            "Exceptions: This agreement does not apply to information that is publicly available, independently developed, or lawfully "
            "received from third parties. "
            "Return of Information: Upon termination, all Confidential Information must be returned or destroyed. "
            "Remedies: Breach of this agreement may result in irreparable harm, and the disclosing party may seek injunctive relief and "
            "monetary damages."
        ),
        "html": "<h1>NON-DISCLOSURE AGREEMENT</h1><p>This Non-Disclosure Agreement is entered into between Company and the receiving party.</p>",
        "elements": [],
        "pages": 1,
    },
}

DEMO_CUSTOMER_NDA = {
    "fileName": "Customer_XYZ_NDA_Modified.pdf",
    "documentType": "customerNda",
    "parsedContent": {
        "text": (
            "MUTUAL NON-DISCLOSURE AND CONFIDENTIALITY AGREEMENT This Mutual Non-Disclosure Agreement is entered into between "
            "XYZ Corporation and Company. "
            "Definitions: Confidential Information shall mean all proprietary information, trade secrets, technical specifications, "
            "business strategies, customer databases, financial records, and any other sensitive data disclosed by either party in any form. "
            "Term and Termination: This agreement shall remain in effect for five (5) years from the date of execution and shall "
            "automatically renew for successive one-year periods unless terminated by written notice. "
            "Confidentiality Obligations: Each party agrees to maintain strict confidentiality and shall not disclose any Confidential "
            "Information without prior written authorization from the disclosing party. "
            "Return and Destruction: Upon termination, all Confidential Information must be returned or destroyed with certified proof "
            "of destruction for digital copies. "
            "Remedies and Damages: Any breach of this agreement shall result in liquidated damages of not less than One Hundred Thousand "
            "Dollars ($100,000) plus reasonable attorney fees and costs. "
            "The parties acknowledge that monetary damages may be insufficient and agree that injunctive relief may be sought."
        ),
        "html": "<h1>MUTUAL NON-DISCLOSURE AND CONFIDENTIALITY AGREEMENT</h1><p>This Mutual Non-Disclosure Agreement is entered into between XYZ Corporation and Company.</p>",
        "elements": [],
        "pages": 1,
    },
}
